import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch


class TestModelIdentifier(unittest.TestCase):
    def test_plain_id_is_direct(self) -> None:
        from nous.llmchain.capabilities import ModelIdentifier

        ident = ModelIdentifier.parse("gpt-4o-mini")
        self.assertEqual(ident.kind, "direct")
        self.assertEqual(ident.lookup_keys(), ["gpt-4o-mini"])

    def test_short_inference_profile(self) -> None:
        from nous.llmchain.capabilities import ModelIdentifier

        ident = ModelIdentifier.parse("us.anthropic.claude-3-haiku-20240307-v1:0")
        self.assertEqual(ident.kind, "cross_region")
        self.assertEqual((ident.prefix, ident.vendor, ident.model), ("us", "anthropic", "claude-3-haiku-20240307-v1:0"))
        self.assertEqual(
            ident.lookup_keys(),
            [
                "us.anthropic.claude-3-haiku-20240307-v1:0",
                "anthropic.claude-3-haiku-20240307-v1:0",
                "claude-3-haiku-20240307-v1:0",
            ],
        )

    def test_inference_profile_arn(self) -> None:
        from nous.llmchain.capabilities import ModelIdentifier

        arn = "arn:aws:bedrock:eu-west-1:123456789012:inference-profile/eu.mistral.pixtral-large-2502-v1:0"
        ident = ModelIdentifier.parse(arn)
        self.assertEqual(ident.kind, "cross_region")
        self.assertEqual(ident.region, "eu-west-1")
        keys = ident.lookup_keys()
        self.assertEqual(keys[0], arn)
        self.assertIn("arn:aws:bedrock:eu-west-1::inference-profile/eu.mistral.pixtral-large-2502-v1:0", keys)
        self.assertIn("mistral.pixtral-large-2502-v1:0", keys)

    def test_foundation_model_arn_is_direct(self) -> None:
        from nous.llmchain.capabilities import ModelIdentifier

        ident = ModelIdentifier.parse("arn:aws:bedrock:us-east-1::foundation-model/amazon.titan-embed-text-v2:0")
        self.assertEqual(ident.kind, "direct")
        self.assertEqual(ident.model, "amazon.titan-embed-text-v2:0")

    def test_other_arn_is_custom(self) -> None:
        from nous.llmchain.capabilities import ModelIdentifier

        ident = ModelIdentifier.parse("arn:aws:bedrock:us-east-1:123456789012:provisioned-model/abc123")
        self.assertEqual(ident.kind, "custom")

    def test_cross_region_builder(self) -> None:
        from nous.llmchain.capabilities import ModelIdentifier

        ident = ModelIdentifier.cross_region("eu-central-1", "anthropic", "claude-3-haiku-20240307-v1:0")
        self.assertEqual(
            ident.raw,
            "arn:aws:bedrock:eu-central-1::inference-profile/eu.anthropic.claude-3-haiku-20240307-v1:0",
        )

    def test_empty_identifier_is_invalid(self) -> None:
        from nous.llmchain import LLMChainError
        from nous.llmchain.capabilities import ModelIdentifier

        with self.assertRaises(LLMChainError) as cm:
            ModelIdentifier.parse("  ")
        self.assertEqual(cm.exception.info.type, "InvalidRequest")


class TestCapabilityRegistry(unittest.TestCase):
    def test_builtin_lookup_and_provenance(self) -> None:
        from nous.llmchain.capabilities import CapabilityRegistry

        reg = CapabilityRegistry()
        rec = reg.capabilities_of("text-embedding-3-small")
        self.assertTrue(rec.embeddings)
        self.assertFalse(rec.chat)
        self.assertEqual(reg.provenance("gpt-4o"), "builtin")

    def test_unknown_model(self) -> None:
        from nous.llmchain import LLMChainError
        from nous.llmchain.capabilities import CapabilityRegistry

        with self.assertRaises(LLMChainError) as cm:
            CapabilityRegistry().capabilities_of("no-such-model")
        self.assertEqual(cm.exception.info.type, "UnknownModel")

    def test_override_replaces_builtin_record(self) -> None:
        from nous.llmchain.capabilities import CapabilityRegistry

        reg = CapabilityRegistry()
        self.assertTrue(reg.capabilities_of("gpt-4o").vision)
        n = reg.load_overrides(
            '[[model]]\nname = "gpt-4o"\nchat = true\n',
            label="test",
        )
        self.assertEqual(n, 1)

        rec = reg.capabilities_of("gpt-4o")
        self.assertTrue(rec.chat)
        self.assertFalse(rec.completion)
        self.assertFalse(rec.vision)
        self.assertFalse(rec.tool_use)
        self.assertIsNone(rec.context_window)
        self.assertEqual(rec.source, "test")

        # the built-in table is untouched
        self.assertTrue(CapabilityRegistry().capabilities_of("gpt-4o").vision)

    def test_override_models_table_and_json(self) -> None:
        from nous.llmchain.capabilities import CapabilityRegistry

        reg = CapabilityRegistry(builtins=[])
        reg.load_overrides('[models."my-model"]\nembeddings = true\ncontext_window = 8192\n', label="toml")
        reg.load_overrides('[{"name": "other", "chat": true, "vision": true}]', label="json")
        self.assertTrue(reg.capabilities_of("my-model").embeddings)
        self.assertEqual(reg.capabilities_of("my-model").context_window, 8192)
        self.assertTrue(reg.capabilities_of("other").vision)
        self.assertEqual(reg.override_sources(), ["toml", "json"])

    def test_later_loads_win(self) -> None:
        from nous.llmchain.capabilities import CapabilityRegistry

        reg = CapabilityRegistry(builtins=[])
        reg.load_overrides('[{"name": "m", "chat": true}]', label="first")
        reg.load_overrides('[{"name": "m", "embeddings": true}]', label="second")
        rec = reg.capabilities_of("m")
        self.assertEqual(rec.source, "second")
        self.assertFalse(rec.chat)
        self.assertTrue(rec.embeddings)

    def test_override_file(self) -> None:
        from nous.llmchain.capabilities import CapabilityRegistry

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "caps.toml"
            path.write_text('[[model]]\nname = "local-model"\ncompletion = true\n', encoding="utf-8")
            reg = CapabilityRegistry(builtins=[])
            reg.load_overrides(path)
            self.assertEqual(reg.provenance("local-model"), str(path))

    def test_malformed_overrides_are_configuration_errors(self) -> None:
        from nous.llmchain import LLMChainError
        from nous.llmchain.capabilities import CapabilityRegistry

        bad = [
            "[[model]]\nchat = true\n",
            '[[model]]\nname = "x"\nchat = "yes"\n',
            '[[model]]\nname = "x"\ncontext_window = -1\n',
            '[[model]]\nname = "x"\nteleport = true\n',
            "[[model]\n",
            '{"name": ',
        ]
        for text in bad:
            reg = CapabilityRegistry(builtins=[])
            with self.subTest(text=text):
                with self.assertRaises(LLMChainError) as cm:
                    reg.load_overrides(text)
                self.assertEqual(cm.exception.info.type, "ConfigurationError")

    def test_frozen_registry_rejects_overrides(self) -> None:
        from nous.llmchain import LLMChainError
        from nous.llmchain.capabilities import CapabilityRegistry

        reg = CapabilityRegistry().freeze()
        self.assertTrue(reg.frozen)
        with self.assertRaises(LLMChainError) as cm:
            reg.load_overrides('[{"name": "m", "chat": true}]')
        self.assertEqual(cm.exception.info.type, "ConfigurationError")

    def test_cross_region_arn_resolves_builtin(self) -> None:
        from nous.llmchain.capabilities import CapabilityRegistry

        reg = CapabilityRegistry()
        rec = reg.capabilities_of(
            "arn:aws:bedrock:us-east-1:123456789012:inference-profile/us.anthropic.claude-3-haiku-20240307-v1:0"
        )
        self.assertEqual(rec.name, "anthropic.claude-3-haiku-20240307-v1:0")
        self.assertTrue(rec.chat)

    def test_arn_override_matches_any_account(self) -> None:
        from nous.llmchain.capabilities import CapabilityRegistry

        reg = CapabilityRegistry(builtins=[])
        reg.load_overrides(
            '[{"name": "arn:aws:bedrock:us-east-1:111111111111:provisioned-model/abc", "chat": true}]'
        )
        rec = reg.capabilities_of("arn:aws:bedrock:us-east-1:222222222222:provisioned-model/abc")
        self.assertTrue(rec.chat)

    def test_default_registry_order_is_caller_controlled(self) -> None:
        from nous.llmchain.capabilities import default_registry

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "caps.json"
            path.write_text('[{"name": "gpt-4o", "completion": true}]', encoding="utf-8")
            env = {
                "NOUS_LLMCHAIN_CAPABILITY_OVERRIDES": str(path),
                "NOUS_LLMCHAIN_CAPABILITY_OVERRIDES_INLINE": '[{"name": "gpt-4o", "embeddings": true}]',
            }
            with patch.dict(os.environ, env, clear=False):
                inline_last = default_registry()
                file_last = default_registry(order=("inline", "file"))

        self.assertTrue(inline_last.frozen)
        self.assertTrue(inline_last.capabilities_of("gpt-4o").embeddings)
        self.assertFalse(inline_last.capabilities_of("gpt-4o").completion)
        self.assertTrue(file_last.capabilities_of("gpt-4o").completion)
        self.assertFalse(file_last.capabilities_of("gpt-4o").embeddings)


class TestRequestChecks(unittest.TestCase):
    def test_output_limit(self) -> None:
        from nous.llmchain import LLMChainError
        from nous.llmchain.capabilities import CapabilityRecord, check_completion_request
        from nous.llmchain.types import CompletionRequest, GenerateParams

        rec = CapabilityRecord(name="m", completion=True, max_output_tokens=100)
        check_completion_request(rec, CompletionRequest(prompt="hi", params=GenerateParams(max_output_tokens=100)))
        with self.assertRaises(LLMChainError) as cm:
            check_completion_request(rec, CompletionRequest(prompt="hi", params=GenerateParams(max_output_tokens=101)))
        self.assertEqual(cm.exception.info.type, "InvalidRequest")

    def test_chat_requires_vision_for_images(self) -> None:
        from nous.llmchain import LLMChainError
        from nous.llmchain.capabilities import CapabilityRecord, check_chat_request
        from nous.llmchain.types import ChatRequest, Message, Part

        rec = CapabilityRecord(name="m", chat=True)
        img = Part.image(b"\x89PNG\r\n\x1a\n0000")
        with self.assertRaises(LLMChainError) as cm:
            check_chat_request(rec, ChatRequest(messages=[Message.user("look", img)]))
        self.assertEqual(cm.exception.info.type, "UnsupportedOperation")


if __name__ == "__main__":
    unittest.main()

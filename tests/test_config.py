import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch


class TestEnvConfig(unittest.TestCase):
    def test_env_files_load_by_priority_without_overriding(self) -> None:
        from nous.llmchain._internal.config import load_env_files

        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / ".env.local").write_text("export A=local\n# comment\nB='quoted'\n", encoding="utf-8")
            (root / ".env.test").write_text("A=test\nC=test\n", encoding="utf-8")
            with patch.dict(os.environ, {"C": "preset"}, clear=True):
                loaded = load_env_files(root)
                self.assertEqual([p.name for p in loaded], [".env.local", ".env.test"])
                self.assertEqual(os.environ["A"], "local")
                self.assertEqual(os.environ["B"], "quoted")
                self.assertEqual(os.environ["C"], "preset")

    def test_prefixed_keys_win(self) -> None:
        from nous.llmchain._internal.config import get_provider_keys

        env = {"OPENAI_API_KEY": "plain", "NOUS_LLMCHAIN_OPENAI_API_KEY": "prefixed", "ANTHROPIC_API_KEY": "a"}
        with patch.dict(os.environ, env, clear=True):
            keys = get_provider_keys()
        self.assertEqual(keys.openai_api_key, "prefixed")
        self.assertEqual(keys.anthropic_api_key, "a")
        self.assertIsNone(keys.bedrock_api_key)

    def test_timeout_and_endpoints(self) -> None:
        from nous.llmchain._internal.config import get_aws_region, get_default_timeout_ms, get_ollama_base_url

        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(get_default_timeout_ms(), 120_000)
            self.assertEqual(get_aws_region(), "us-east-1")
            self.assertEqual(get_ollama_base_url(), "http://localhost:11434")
        env = {"NOUS_LLMCHAIN_TIMEOUT_MS": "oops", "AWS_REGION": "eu-west-1", "OLLAMA_HOST": "gpu-box:11434"}
        with patch.dict(os.environ, env, clear=True):
            self.assertEqual(get_default_timeout_ms(), 120_000)
            self.assertEqual(get_aws_region(), "eu-west-1")
            self.assertEqual(get_ollama_base_url(), "http://gpu-box:11434")


if __name__ == "__main__":
    unittest.main()

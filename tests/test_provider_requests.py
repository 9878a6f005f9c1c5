import unittest
from unittest.mock import patch


class TestEmbeddingCapabilityGate(unittest.TestCase):
    def test_embed_against_chat_model_fails_before_network(self) -> None:
        from nous.llmchain import LLMChainError
        from nous.llmchain.providers.openai import OpenAIAdapter
        from nous.llmchain.types import EmbeddingRequest

        with patch("nous.llmchain.providers.openai.request_json") as request_json:
            with self.assertRaises(LLMChainError) as cm:
                OpenAIAdapter(api_key="__demo__").embed(EmbeddingRequest(inputs=["x"]), "gpt-4o-mini")
            request_json.assert_not_called()
        self.assertEqual(cm.exception.info.type, "UnsupportedOperation")

    def test_override_disabling_embeddings_is_honoured(self) -> None:
        from nous.llmchain import LLMChainError
        from nous.llmchain.capabilities import CapabilityRegistry
        from nous.llmchain.providers.bedrock import BedrockAdapter
        from nous.llmchain.types import EmbeddingRequest

        reg = CapabilityRegistry()
        reg.load_overrides('[{"name": "amazon.titan-embed-text-v2:0", "chat": true}]', label="ops")
        adapter = BedrockAdapter(api_key="__demo__", registry=reg.freeze())
        with patch("nous.llmchain.providers.bedrock.request_json") as request_json:
            with self.assertRaises(LLMChainError) as cm:
                adapter.embed(EmbeddingRequest(inputs=["x"]), "amazon.titan-embed-text-v2:0")
            request_json.assert_not_called()
        self.assertEqual(cm.exception.info.type, "UnsupportedOperation")
        self.assertIn("ops", cm.exception.info.message)

    def test_anthropic_has_no_embeddings(self) -> None:
        from nous.llmchain import LLMChainError
        from nous.llmchain.providers.anthropic import AnthropicAdapter
        from nous.llmchain.types import EmbeddingRequest

        with patch("nous.llmchain.providers.anthropic.request_json") as request_json:
            with self.assertRaises(LLMChainError) as cm:
                AnthropicAdapter(api_key="__demo__").embed(EmbeddingRequest(inputs=["x"]), "claude-3-haiku-20240307")
            request_json.assert_not_called()
        self.assertEqual(cm.exception.info.type, "UnsupportedOperation")


class TestWireBodies(unittest.TestCase):
    def test_bodies_are_deterministic(self) -> None:
        from nous.llmchain.providers import anthropic, bedrock, ollama, openai
        from nous.llmchain.types import ChatRequest, GenerateParams, Message, Part

        img = Part.image(b"\xff\xd8\xff\xe0jpegdata")
        req = ChatRequest(
            messages=[Message.system("sys"), Message.user("describe", img)],
            params=GenerateParams(temperature=0.2, max_output_tokens=64, stop=["END"]),
        )
        builders = [
            lambda: openai.chat_body(req, model_id="gpt-4o"),
            lambda: anthropic.messages_body(req, model_id="claude-3-haiku-20240307"),
            lambda: bedrock.converse_body(req),
            lambda: ollama.chat_body(req, model_id="llava"),
        ]
        for build in builders:
            self.assertEqual(build(), build())

    def test_openai_chat_body_shape(self) -> None:
        from nous.llmchain.providers.openai import chat_body
        from nous.llmchain.types import ChatRequest, GenerateParams, Message, Part

        img = Part.image("aGVsbG8=", "image/png")
        body = chat_body(
            ChatRequest(
                messages=[Message.system("sys"), Message.user("look", img)],
                params=GenerateParams(temperature=0.5, max_output_tokens=32),
            ),
            model_id="gpt-4o",
        )
        self.assertEqual(body["messages"][0], {"role": "system", "content": "sys"})
        self.assertEqual(
            body["messages"][1]["content"][1],
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,aGVsbG8="}},
        )
        self.assertEqual(body["max_completion_tokens"], 32)
        self.assertEqual(body["temperature"], 0.5)

    def test_anthropic_default_max_tokens(self) -> None:
        from nous.llmchain.providers.anthropic import messages_body
        from nous.llmchain.types import ChatRequest, Message

        body = messages_body(ChatRequest(messages=[Message.user("hi")]), model_id="claude-3-haiku-20240307")
        self.assertEqual(body["max_tokens"], 1024)
        self.assertNotIn("system", body)

    def test_bedrock_image_block(self) -> None:
        from nous.llmchain.providers.bedrock import converse_body
        from nous.llmchain.types import ChatRequest, GenerateParams, Message, Part

        body = converse_body(
            ChatRequest(
                messages=[Message.system("sys"), Message.user("look", Part.image("aGVsbG8=", "image/jpeg"))],
                params=GenerateParams(max_output_tokens=10, top_p=0.9),
            )
        )
        self.assertEqual(body["system"], [{"text": "sys"}])
        self.assertEqual(body["messages"][0]["content"][1], {"image": {"format": "jpeg", "source": {"bytes": "aGVsbG8="}}})
        self.assertEqual(body["inferenceConfig"], {"maxTokens": 10, "topP": 0.9})

    def test_ollama_generate_body_options(self) -> None:
        from nous.llmchain.providers.ollama import generate_body
        from nous.llmchain.types import CompletionRequest, GenerateParams

        body = generate_body(
            CompletionRequest(prompt="p", system="s", params=GenerateParams(temperature=0.1, max_output_tokens=5)),
            model_id="llama3.2",
        )
        self.assertEqual(
            body,
            {"model": "llama3.2", "prompt": "p", "stream": False, "system": "s", "options": {"temperature": 0.1, "num_predict": 5}},
        )


class TestCompletionRouting(unittest.TestCase):
    def test_openai_chat_model_completes_through_chat(self) -> None:
        from nous.llmchain.providers.openai import OpenAIAdapter
        from nous.llmchain.types import CompletionRequest

        with patch("nous.llmchain.providers.openai.request_json") as request_json:
            request_json.return_value = {
                "id": "c1",
                "choices": [{"message": {"content": "hello"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 2, "completion_tokens": 1, "total_tokens": 3},
            }
            out = OpenAIAdapter(api_key="k", base_url="https://example.invalid/v1").complete(
                CompletionRequest(prompt="hi"), "gpt-4o-mini"
            )
            _, kwargs = request_json.call_args
        self.assertTrue(kwargs["url"].endswith("/chat/completions"))
        self.assertEqual(kwargs["json_body"]["messages"], [{"role": "user", "content": "hi"}])
        self.assertEqual(out.text, "hello")
        self.assertEqual(out.finish_reason, "stop")
        self.assertEqual(out.usage.total_tokens if out.usage else None, 3)

    def test_openai_instruct_model_uses_legacy_completions(self) -> None:
        from nous.llmchain.providers.openai import OpenAIAdapter
        from nous.llmchain.types import CompletionRequest

        with patch("nous.llmchain.providers.openai.request_json") as request_json:
            request_json.return_value = {"id": "c2", "choices": [{"text": "world", "finish_reason": "length"}]}
            out = OpenAIAdapter(api_key="k", base_url="https://example.invalid/v1").complete(
                CompletionRequest(prompt="hello"), "gpt-3.5-turbo-instruct"
            )
            _, kwargs = request_json.call_args
        self.assertTrue(kwargs["url"].endswith("/completions"))
        self.assertFalse(kwargs["url"].endswith("/chat/completions"))
        self.assertEqual(kwargs["json_body"]["prompt"], "hello")
        self.assertEqual(out.text, "world")
        self.assertEqual(out.finish_reason, "length")

    def test_malformed_chat_response_is_translation_error(self) -> None:
        from nous.llmchain import LLMChainError
        from nous.llmchain.providers.openai import OpenAIAdapter
        from nous.llmchain.types import ChatRequest, Message

        with patch("nous.llmchain.providers.openai.request_json") as request_json:
            request_json.return_value = {"choices": []}
            with self.assertRaises(LLMChainError) as cm:
                OpenAIAdapter(api_key="k").chat(ChatRequest(messages=[Message.user("hi")]), "gpt-4o")
        self.assertEqual(cm.exception.info.type, "TranslationError")


    def test_bedrock_cross_region_profile_id(self) -> None:
        from nous.llmchain.providers.bedrock import BedrockAdapter
        from nous.llmchain.types import ChatRequest, Message

        adapter = BedrockAdapter(api_key="k", region="eu-west-1")
        model_id = adapter.cross_region_model_id("anthropic", "claude-3-haiku-20240307-v1:0")
        self.assertEqual(
            model_id,
            "arn:aws:bedrock:eu-west-1::inference-profile/eu.anthropic.claude-3-haiku-20240307-v1:0",
        )
        self.assertEqual(adapter.capabilities(model_id).name, "anthropic.claude-3-haiku-20240307-v1:0")

        with patch("nous.llmchain.providers.bedrock.request_json") as request_json:
            request_json.return_value = {"output": {"message": {"content": [{"text": "hi"}]}}, "stopReason": "end_turn"}
            resp = adapter.chat(ChatRequest(messages=[Message.user("hello")]), model_id)
        self.assertEqual(resp.text(), "hi")
        url = request_json.call_args.kwargs["url"]
        self.assertIn("bedrock-runtime.eu-west-1", url)
        quoted = "arn%3Aaws%3Abedrock%3Aeu-west-1%3A%3Ainference-profile%2Feu.anthropic.claude-3-haiku-20240307-v1%3A0"
        self.assertTrue(url.endswith(f"/model/{quoted}/converse"))


class TestEmbeddings(unittest.TestCase):
    def test_openai_embeddings_are_ordered_by_index(self) -> None:
        from nous.llmchain.providers.openai import OpenAIAdapter
        from nous.llmchain.types import EmbeddingRequest

        with patch("nous.llmchain.providers.openai.request_json") as request_json:
            request_json.return_value = {
                "data": [{"index": 1, "embedding": [0.2]}, {"index": 0, "embedding": [0.1]}],
                "usage": {"prompt_tokens": 4, "total_tokens": 4},
            }
            out = OpenAIAdapter(api_key="k").embed(
                EmbeddingRequest(inputs=["a", "b"], dimensions=1), "text-embedding-3-small"
            )
            _, kwargs = request_json.call_args
        self.assertEqual(out.embeddings, [[0.1], [0.2]])
        self.assertEqual(kwargs["json_body"]["dimensions"], 1)

    def test_bedrock_titan_one_call_per_input(self) -> None:
        from nous.llmchain.providers.bedrock import BedrockAdapter
        from nous.llmchain.types import EmbeddingRequest

        with patch("nous.llmchain.providers.bedrock.request_json") as request_json:
            request_json.side_effect = [
                {"embedding": [1, 2], "inputTextTokenCount": 3},
                {"embedding": [3, 4], "inputTextTokenCount": 2},
            ]
            out = BedrockAdapter(api_key="k").embed(
                EmbeddingRequest(inputs=["a", "b"], dimensions=256), "amazon.titan-embed-text-v2:0"
            )
        self.assertEqual(out.embeddings, [[1.0, 2.0], [3.0, 4.0]])
        self.assertEqual(out.usage.input_tokens if out.usage else None, 5)
        first = request_json.call_args_list[0].kwargs
        self.assertTrue(first["url"].endswith("/model/amazon.titan-embed-text-v2%3A0/invoke"))
        self.assertEqual(first["json_body"], {"inputText": "a", "dimensions": 256})

    def test_bedrock_cohere_batch(self) -> None:
        from nous.llmchain.providers.bedrock import BedrockAdapter
        from nous.llmchain.types import EmbeddingRequest

        with patch("nous.llmchain.providers.bedrock.request_json") as request_json:
            request_json.return_value = {"embeddings": {"float": [[0.5], [0.25]]}}
            out = BedrockAdapter(api_key="k").embed(EmbeddingRequest(inputs=["a", "b"]), "cohere.embed-english-v3")
            _, kwargs = request_json.call_args
        self.assertEqual(out.embeddings, [[0.5], [0.25]])
        self.assertEqual(kwargs["json_body"], {"texts": ["a", "b"], "input_type": "search_document"})

    def test_ollama_embed(self) -> None:
        from nous.llmchain.providers.ollama import OllamaAdapter
        from nous.llmchain.types import EmbeddingRequest

        with patch("nous.llmchain.providers.ollama.request_json") as request_json:
            request_json.return_value = {"embeddings": [[1, 0]], "prompt_eval_count": 2}
            out = OllamaAdapter(base_url="http://ollama.invalid").embed(
                EmbeddingRequest(inputs=["a"]), "nomic-embed-text:latest"
            )
            _, kwargs = request_json.call_args
        self.assertEqual(out.embeddings, [[1.0, 0.0]])
        self.assertEqual(kwargs["url"], "http://ollama.invalid/api/embed")


if __name__ == "__main__":
    unittest.main()

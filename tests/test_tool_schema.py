import unittest
from dataclasses import dataclass
from typing_extensions import TypedDict


class TestToolParameterSchema(unittest.TestCase):
    def test_python_types_become_object_schemas(self) -> None:
        from pydantic import BaseModel

        from nous.llmchain._internal.tool_parts import tool_declaration
        from nous.llmchain.types import Tool

        class Model(BaseModel):
            a: int

        class TD(TypedDict):
            a: int

        @dataclass
        class DC:
            a: int

        for typ in (Model, TD, DC):
            with self.subTest(typ=typ.__name__):
                name, _, params = tool_declaration(Tool(name=" lookup ", parameters=typ))
                self.assertEqual(name, "lookup")
                self.assertEqual(params["type"], "object")
                self.assertEqual(params["properties"]["a"]["type"], "integer")

    def test_missing_parameters_default_to_empty_object(self) -> None:
        from nous.llmchain._internal.tool_parts import tool_declaration
        from nous.llmchain.types import Tool

        self.assertEqual(tool_declaration(Tool(name="ping")), ("ping", None, {"type": "object"}))

    def test_non_object_schema_is_rejected(self) -> None:
        from nous.llmchain import LLMChainError
        from nous.llmchain._internal.tool_parts import tool_declaration
        from nous.llmchain.types import Tool

        with self.assertRaises(LLMChainError) as cm:
            tool_declaration(Tool(name="bad", parameters={"type": "string"}))
        self.assertEqual(cm.exception.info.type, "InvalidRequest")


if __name__ == "__main__":
    unittest.main()

import json


def list_tools():
    return [
        {
            "name": "add",
            "description": "Add two numbers",
            "inputSchema": {
                "type": "object",
                "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
                "required": ["a", "b"],
            },
        }
    ]


async def execute(call, context):
    args = json.loads(call.arguments_json)
    return {"content": str(args["a"] + args["b"]), "metadata": {"precision": context.config.get("precision")}}

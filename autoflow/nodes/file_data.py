"""FileData node: load an uploaded file into a binary property."""
from autoflow.errors import AutoflowError
from autoflow.nodes.base import NodeProperty, NodeType, NodeTypeDescription, error_item


class FileData(NodeType):
    description = NodeTypeDescription(
        name="fileData",
        display_name="File Data",
        description="Load an uploaded file as binary data",
        group=["input"],
        properties=[
            NodeProperty(name="fileId", display_name="File ID", default="", required=True),
            NodeProperty(name="fileName", display_name="File Name", default=""),
            NodeProperty(name="mimeType", display_name="MIME Type", default=""),
            NodeProperty(name="dataPropertyName", display_name="Put Output File in Field", default="data"),
        ],
    )

    async def execute(self, ctx):
        output = []
        for index, _ in enumerate(ctx.get_input_data()):
            try:
                file_id = ctx.get_node_parameter("fileId", index)
                file_name = ctx.get_node_parameter("fileName", index)
                mime_type = ctx.get_node_parameter("mimeType", index)
                property_name = ctx.get_node_parameter("dataPropertyName", index)

                stream = await ctx.helpers.get_binary_stream(file_id)
                binary = await ctx.helpers.prepare_binary_data(stream, file_name, mime_type)
                output.append({
                    "json": {"fileName": file_name, "mimeType": mime_type},
                    "binary": {property_name: binary},
                    "pairedItem": {"item": index},
                })
            except (AutoflowError, OSError) as e:
                if ctx.continue_on_fail():
                    output.append(error_item(e, index))
                    continue
                raise
        return [output]

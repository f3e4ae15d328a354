import asyncio


async def run(context):
    await asyncio.sleep(0)
    context.state.set("started_version", context.meta.version)
    context.logger.info(f"hello_plugin {context.meta.version} started")

def run(context):
    version = context.state.get("started_version", "unknown")
    context.logger.info(f"hello_plugin {version} stopping ({context.reason})")
    context.state.clear()

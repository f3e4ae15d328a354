def run(context):
    context.logger.info(f"Initializing hello_plugin in {context.mode} mode")

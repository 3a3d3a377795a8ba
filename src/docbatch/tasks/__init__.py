"""Document generation task queue: claiming, pipeline and runner."""

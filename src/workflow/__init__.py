"""
Alfred workflow commands: one operation per process invocation.

Modules:
- operations: CLI flags parsed into an `Operation` and its arguments
- policy: cache freshness checks run before any search renders
- search / menus / actions: the handlers
- handler: dispatch and process entry point
"""

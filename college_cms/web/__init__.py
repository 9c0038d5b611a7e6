"""FastAPI web adapter: app, middleware, routes and HTML components."""

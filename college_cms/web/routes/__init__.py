"""Routers included by `college_cms.web.main`."""

"""
MidatoPay API
FastAPI server, routers and background tasks
"""

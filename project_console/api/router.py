from fastapi import APIRouter
from project_console.api.endpoints import auth, users, reports, schema, projects

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(reports.router)
api_router.include_router(schema.router)
api_router.include_router(projects.router)

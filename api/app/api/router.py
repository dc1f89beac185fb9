from fastapi import APIRouter

from app.api.routes import admin, health, students

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(students.router, prefix="/students", tags=["students"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])

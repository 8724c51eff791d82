from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.classes.classes_router import router as classes_router
from app.api.v1.departments.department_router import router as departments_router
from app.api.v1.modules.users.student_router import router as students_router
from app.api.v1.modules.users.teacher_router import router as teachers_router
from app.api.v1.modules.users.user_router import router as users_router
from app.core.config import settings
from app.core.locks import ClassLockRegistry
from app.core.logging_config import setup_logging


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title="Roster & Credentials Backend")

    # One registry per process: every roster write for a class goes through its lock
    app.state.class_locks = ClassLockRegistry(timeout=settings.class_lock_timeout_seconds)

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(departments_router)
    app.include_router(classes_router)
    app.include_router(students_router)
    app.include_router(teachers_router)
    app.include_router(users_router)

    return app


app = create_app()

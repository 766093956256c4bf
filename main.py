from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from shared.config import CORS_ORIGINS, LOG_LEVEL
from shared.errors import register_exception_handlers
from shared.log import configure_logging

import services.user_management.models  # noqa: F401  register mappers
import services.class_management.models  # noqa: F401
import services.assignment_management.models  # noqa: F401

from services.user_management.controllers.user_service import router as user_router
from services.user_management.controllers.course_service import router as course_router
from services.user_management.controllers.student_service import router as student_router
from services.class_management.controllers.class_service import router as class_router
from services.class_management.controllers.attendance_service import router as attendance_router
from services.assignment_management.controllers.assignment_service import router as assignment_router


configure_logging(LOG_LEVEL)

app = FastAPI(title="Academic Scheduling Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/")
def health_check():
    return {"status": "Academic Scheduling Backend is running ✅"}


app.include_router(user_router)
app.include_router(student_router)
app.include_router(course_router)
app.include_router(class_router)
app.include_router(attendance_router)
app.include_router(assignment_router)


if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))

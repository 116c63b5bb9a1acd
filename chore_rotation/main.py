import logging

from fastapi import FastAPI

from chore_rotation.config import LOG_LEVEL
from chore_rotation.routes.availability_routes import router as availability_router
from chore_rotation.routes.fairness_routes import router as fairness_router
from chore_rotation.routes.rotation_routes import router as rotation_router

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Chore Rotation Engine")

app.include_router(rotation_router, prefix="/api/rotation", tags=["Rotation"])
app.include_router(fairness_router, prefix="/api/fairness", tags=["Fairness"])
app.include_router(availability_router, prefix="/api/availability", tags=["Availability"])


@app.get("/")
async def root():
    return {"message": "Chore Rotation Engine is active 🚀"}

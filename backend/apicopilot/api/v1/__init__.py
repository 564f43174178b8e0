from fastapi import APIRouter

from apicopilot.api.v1 import widget

api_router = APIRouter()
api_router.include_router(widget.router, prefix="/widget", tags=["widget"])

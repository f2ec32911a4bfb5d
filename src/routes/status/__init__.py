from fastapi import APIRouter

router = APIRouter(tags=["Status"])

from src.routes.status.status import get_free_tier_status, health_check  # noqa

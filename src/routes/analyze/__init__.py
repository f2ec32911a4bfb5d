from fastapi import APIRouter

router = APIRouter(tags=["Analyze"])

# Import routes
from src.routes.analyze.proxy import proxy_analyze_request  # noqa

from fastapi import APIRouter

from jobflow.api.routes import confirmations, hourmeter, jobs, queues, requests

api_router = APIRouter()
api_router.include_router(jobs.router)
api_router.include_router(hourmeter.router)
api_router.include_router(confirmations.router)
api_router.include_router(requests.router)
api_router.include_router(queues.router)

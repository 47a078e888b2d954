# wallet_engine/api/v1/router.py

from fastapi import APIRouter
from wallet_engine.api.v1.wallets import router as wallets_router

router = APIRouter()

router.include_router(wallets_router, tags=["Wallets"])

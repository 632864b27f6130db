"""
Server-side wallet mirror
Stores the merchant's encrypted wallet record; the private key never leaves its ciphertext here.
"""

from fastapi import APIRouter, Depends, HTTPException, status
import structlog

from midatopay.api.dependencies import get_db, get_user_id
from midatopay.api.models import WalletMirror
from midatopay.chain.felt import is_valid_address
from midatopay.database.client import DatabaseClient

logger = structlog.get_logger()

router = APIRouter(prefix="/api/wallet", tags=["Wallet"])


@router.post("/save", response_model=WalletMirror)
async def save_wallet(
    wallet: WalletMirror,
    user_id: str = Depends(get_user_id),
    db: DatabaseClient = Depends(get_db),
):
    if not is_valid_address(wallet.address):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid wallet address")

    row = await db.save_wallet(user_id, wallet.model_dump(mode="json"))
    logger.info("wallet_mirrored", user_id=user_id, address=wallet.address)
    return WalletMirror.model_validate({k: row[k] for k in WalletMirror.model_fields if k in row})


@router.get("/get", response_model=WalletMirror)
async def get_wallet(user_id: str = Depends(get_user_id), db: DatabaseClient = Depends(get_db)):
    row = await db.get_wallet(user_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No wallet for this user")
    return WalletMirror.model_validate({k: row[k] for k in WalletMirror.model_fields if k in row})


@router.get("/has-wallet")
async def has_wallet(user_id: str = Depends(get_user_id), db: DatabaseClient = Depends(get_db)):
    row = await db.get_wallet(user_id)
    return {"hasWallet": row is not None}


@router.delete("/clear")
async def clear_wallet(user_id: str = Depends(get_user_id), db: DatabaseClient = Depends(get_db)):
    await db.delete_wallet(user_id)
    logger.info("wallet_mirror_cleared", user_id=user_id)
    return {"status": "cleared"}

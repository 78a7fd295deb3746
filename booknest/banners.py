import logging
from datetime import datetime, timezone
from typing import List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from .exceptions import BannerNotFoundError, DatabaseError
from .locks import KeyedLock
from .models import BannerModel, parse_object_id
from .schemas import BannerCreate, BannerUpdate

logger = logging.getLogger(__name__)

# Activations are serialised so that two of them can not interleave their
# set/clear steps and leave two banners active.
activation_lock = KeyedLock()


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def create_banner(db, banner: BannerCreate) -> BannerModel:
    now = _now()
    document = {
        **banner.model_dump(mode="json", by_alias=True),
        "active": False,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = await db.banners.insert_one(document)
    except PyMongoError as e:
        raise DatabaseError("create banner", str(e))
    banner_id = str(result.inserted_id)
    logger.info(f"Banner created: {banner.title} ({banner_id})")
    if banner.active:
        return await activate_banner(db, banner_id)
    document["_id"] = result.inserted_id
    return BannerModel(**document)


async def list_banners(db) -> List[BannerModel]:
    try:
        banners = await db.banners.find(
            {}, sort=[("createdAt", DESCENDING)]
        ).to_list(length=None)
    except PyMongoError as e:
        raise DatabaseError("list banners", str(e))
    return [BannerModel(**banner) for banner in banners]


async def get_banner(db, banner_id: str) -> BannerModel:
    banner_oid = parse_object_id(banner_id, BannerNotFoundError)
    try:
        banner = await db.banners.find_one({"_id": banner_oid})
    except PyMongoError as e:
        raise DatabaseError("get banner", str(e))
    if banner is None:
        raise BannerNotFoundError(banner_id)
    return BannerModel(**banner)


async def get_active_banner(db) -> Optional[BannerModel]:
    try:
        banner = await db.banners.find_one({"active": True})
    except PyMongoError as e:
        raise DatabaseError("get active banner", str(e))
    return BannerModel(**banner) if banner else None


async def update_banner(db, banner_id: str, banner_update: BannerUpdate) -> BannerModel:
    update_data = banner_update.model_dump(mode="json", by_alias=True, exclude_unset=True)
    if not update_data:
        return await get_banner(db, banner_id)

    banner_oid = parse_object_id(banner_id, BannerNotFoundError)
    update_data["updatedAt"] = _now()
    try:
        banner = await db.banners.find_one_and_update(
            {"_id": banner_oid},
            {"$set": update_data},
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        raise DatabaseError("update banner", str(e))
    if banner is None:
        raise BannerNotFoundError(banner_id)
    return BannerModel(**banner)


async def delete_banner(db, banner_id: str):
    banner_oid = parse_object_id(banner_id, BannerNotFoundError)
    try:
        result = await db.banners.delete_one({"_id": banner_oid})
    except PyMongoError as e:
        raise DatabaseError("delete banner", str(e))
    if result.deleted_count == 0:
        raise BannerNotFoundError(banner_id)


async def activate_banner(db, banner_id: str) -> BannerModel:
    """Make one banner the only active banner."""
    banner_oid = parse_object_id(banner_id, BannerNotFoundError)
    async with activation_lock.hold("banners"):
        try:
            banner = await db.banners.find_one_and_update(
                {"_id": banner_oid},
                {"$set": {"active": True, "updatedAt": _now()}},
                return_document=ReturnDocument.AFTER,
            )
            if banner is None:
                raise BannerNotFoundError(banner_id)
            cleared = await db.banners.update_many(
                {"_id": {"$ne": banner_oid}, "active": True},
                {"$set": {"active": False, "updatedAt": _now()}},
            )
        except PyMongoError as e:
            raise DatabaseError("activate banner", str(e))
    logger.info(
        f"Banner {banner_id} activated, {cleared.modified_count} other banners cleared"
    )
    return BannerModel(**banner)

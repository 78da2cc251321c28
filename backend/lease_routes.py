"""
Lease listings: posting, interest and transfer.
"""
from fastapi import APIRouter, Depends, status
import logging

from auth import get_current_user
from dependencies import Services, get_services, get_transaction_runner
from errors import parse_positive_int
from models import (
    InterestRequestResponse,
    LeaseListingCreate,
    LeaseListingResponse,
    LeaseListingUpdate,
    to_response,
    to_response_list,
)
from permissions import Role, is_admin, require_roles

logger = logging.getLogger(__name__)

lease_router = APIRouter(prefix="/api/lease-listings", tags=["Lease Listings"])

student_only = require_roles(Role.STUDENT)


@lease_router.post("", status_code=status.HTTP_201_CREATED)
async def create_lease_listing(
    body: LeaseListingCreate,
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    data = body.model_dump(by_alias=True)
    listing = await runner.run(
        lambda session: services.marketplace.create_lease_listing(current_user["user_id"], data, session=session)
    )
    return to_response(LeaseListingResponse, listing)


@lease_router.get("")
async def list_lease_listings(
    current_user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return to_response_list(LeaseListingResponse, await services.marketplace.list_lease_listings())


@lease_router.get("/mine")
async def list_my_lease_listings(
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
):
    listings = await services.marketplace.list_owned_lease_listings(current_user["user_id"])
    return to_response_list(LeaseListingResponse, listings)


@lease_router.patch("/{listing_id}")
async def update_lease_listing(
    listing_id: str,
    body: LeaseListingUpdate,
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    lid = parse_positive_int(listing_id)
    changes = body.model_dump(by_alias=True, exclude_none=True)
    listing = await runner.run(
        lambda session: services.marketplace.update_lease_listing(
            lid, current_user["user_id"], changes, session=session
        )
    )
    return to_response(LeaseListingResponse, listing)


@lease_router.delete("/{listing_id}")
async def delete_lease_listing(
    listing_id: str,
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    lid = parse_positive_int(listing_id)
    deleted = await runner.run(
        lambda session: services.marketplace.delete_lease_listing(lid, current_user["user_id"], session=session)
    )
    return to_response(LeaseListingResponse, deleted)


@lease_router.post("/{listing_id}/interest", status_code=status.HTTP_201_CREATED)
async def submit_interest(
    listing_id: str,
    current_user: dict = Depends(student_only),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    lid = parse_positive_int(listing_id)
    interest = await runner.run(
        lambda session: services.marketplace.submit_interest(lid, current_user["user_id"], session=session)
    )
    return to_response(InterestRequestResponse, interest)


@lease_router.post("/{listing_id}/transfer")
async def transfer_lease_listing(
    listing_id: str,
    current_user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    """APPROVED -> TRANSFERRED, by the owner or an admin."""
    lid = parse_positive_int(listing_id)
    listing = await runner.run(
        lambda session: services.marketplace.transfer_lease_listing(
            lid, current_user["user_id"], is_admin(current_user), session=session
        )
    )
    return to_response(LeaseListingResponse, listing)

"""Cart lifecycle — get-or-create, clearing, merging and ownership."""

import structlog
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError

from ordering.cart.cart import Cart, CartSummary, find_cart_for_owner, get_cart
from shared.config import get_settings
from shared.database import unit_of_work
from shared.errors import ErrorCode, ValidationFailed

logger = structlog.get_logger(__name__)


class GetOrCreateCart(BaseModel):
    user_id: str | None = None
    session_id: str | None = None


class ClearCart(BaseModel):
    cart_id: str


class MergeCarts(BaseModel):
    user_cart_id: str
    guest_cart_id: str


class ConvertToUserCart(BaseModel):
    cart_id: str
    user_id: str


class GetCartSummary(BaseModel):
    cart_id: str


class CartManagementHandler:
    def get_or_create(self, command: GetOrCreateCart) -> Cart:
        if not command.user_id and not command.session_id:
            raise ValidationFailed(
                ErrorCode.USER_ID_OR_SESSION_ID_REQUIRED,
                "A cart needs either a user id or a session id",
            )

        with unit_of_work() as session:
            cart = find_cart_for_owner(session, command.user_id, command.session_id)
            if cart is not None:
                return cart

            cart = Cart.create(
                user_id=command.user_id,
                session_id=command.session_id,
                ttl_days=get_settings().cart_ttl_days,
            )
            try:
                with session.begin_nested():
                    session.add(cart)
            except IntegrityError:
                # A concurrent request created the owner's cart first.
                cart = find_cart_for_owner(session, command.user_id, command.session_id)
            else:
                logger.info("Cart created", cart_id=cart.id, user_id=cart.user_id)
            return cart

    def clear(self, command: ClearCart) -> Cart:
        with unit_of_work() as session:
            cart = get_cart(session, command.cart_id)
            cart.clear()
            cart.touch(get_settings().cart_ttl_days)
            return cart

    def merge(self, command: MergeCarts) -> Cart:
        """Fold a guest cart into a user's cart and delete the guest cart."""
        with unit_of_work() as session:
            user_cart = get_cart(session, command.user_cart_id)
            if command.guest_cart_id == user_cart.id:
                return user_cart
            guest_cart = get_cart(session, command.guest_cart_id)
            _merge(session, user_cart, guest_cart)
            return user_cart

    def convert_to_user(self, command: ConvertToUserCart) -> Cart:
        """Hand a guest cart to a user who just signed in."""
        with unit_of_work() as session:
            guest_cart = get_cart(session, command.cart_id)
            if guest_cart.user_id == command.user_id:
                return guest_cart

            user_cart = find_cart_for_owner(session, user_id=command.user_id)
            if user_cart is not None:
                _merge(session, user_cart, guest_cart)
                return user_cart

            guest_cart.assign_to_user(command.user_id)
            guest_cart.touch(get_settings().cart_ttl_days)
            logger.info("Guest cart assigned to user", cart_id=guest_cart.id, user_id=command.user_id)
            return guest_cart

    def summary(self, command: GetCartSummary) -> CartSummary:
        with unit_of_work() as session:
            return get_cart(session, command.cart_id).summary()

    def get(self, cart_id: str) -> Cart:
        with unit_of_work() as session:
            return get_cart(session, cart_id)


def _merge(session, user_cart: Cart, guest_cart: Cart) -> None:
    user_cart.absorb(guest_cart)
    user_cart.touch(get_settings().cart_ttl_days)
    session.delete(guest_cart)
    logger.info(
        "Guest cart merged",
        user_cart_id=user_cart.id,
        guest_cart_id=guest_cart.id,
        item_count=user_cart.item_count,
    )

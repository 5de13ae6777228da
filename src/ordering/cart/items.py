"""Cart item management — commands and handler."""

import structlog
from pydantic import BaseModel, Field, model_validator

from catalogue.sql_adapter import SqlCatalogue
from ordering.cart.cart import MAX_ITEM_QUANTITY, Cart, get_cart
from shared.config import get_settings
from shared.database import unit_of_work
from shared.errors import ErrorCode, NotFoundError, ValidationFailed

logger = structlog.get_logger(__name__)


class AddToCart(BaseModel):
    cart_id: str
    product_id: str | None = None
    service_id: str | None = None
    quantity: int = Field(default=1, ge=1, le=MAX_ITEM_QUANTITY)

    @model_validator(mode="after")
    def _exactly_one_reference(self) -> "AddToCart":
        if bool(self.product_id) == bool(self.service_id):
            raise ValidationFailed(
                ErrorCode.INVALID_CART_ITEM,
                "A cart item references exactly one product or one service",
            )
        return self


class UpdateCartItem(BaseModel):
    cart_id: str
    item_id: str
    quantity: int = Field(ge=0, le=MAX_ITEM_QUANTITY)


class RemoveFromCart(BaseModel):
    cart_id: str
    item_id: str


class ManageCartItemsHandler:
    def add_to_cart(self, command: AddToCart) -> Cart:
        with unit_of_work() as session:
            cart = get_cart(session, command.cart_id)
            catalogue = SqlCatalogue(session)

            if command.product_id:
                product = catalogue.get_product(command.product_id)
                if product is None:
                    raise NotFoundError(ErrorCode.PRODUCT_NOT_FOUND, f"Product {command.product_id} not found")
                cart.add_product(product, command.quantity)
            else:
                service = catalogue.get_service(command.service_id)
                if service is None:
                    raise NotFoundError(ErrorCode.SERVICE_NOT_FOUND, f"Service {command.service_id} not found")
                cart.add_service(service, command.quantity)

            cart.touch(get_settings().cart_ttl_days)
            logger.info(
                "Item added to cart",
                cart_id=cart.id,
                product_id=command.product_id,
                service_id=command.service_id,
                quantity=command.quantity,
            )
            return cart

    def update_cart_item(self, command: UpdateCartItem) -> Cart:
        with unit_of_work() as session:
            cart = get_cart(session, command.cart_id)
            cart.update_item_quantity(command.item_id, command.quantity)
            cart.touch(get_settings().cart_ttl_days)
            return cart

    def remove_from_cart(self, command: RemoveFromCart) -> Cart:
        with unit_of_work() as session:
            cart = get_cart(session, command.cart_id)
            cart.remove_item(command.item_id)
            cart.touch(get_settings().cart_ttl_days)
            return cart

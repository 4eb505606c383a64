"""Discount code management — commands and handler."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.promotions.discount import DiscountCode, DiscountType


@ordering.command(part_of="DiscountCode")
class CreateDiscountCode:
    code = String(required=True, max_length=50)
    discount_type = String(required=True, choices=DiscountType)
    value = Integer(required=True, min_value=0)
    max_discount = Integer(min_value=0)
    min_order_total = Integer(default=0, min_value=0)
    valid_until = DateTime()
    usage_limit = Integer(min_value=1)
    description = String(max_length=255)


@ordering.command(part_of="DiscountCode")
class DeactivateDiscountCode:
    discount_code_id = Identifier(required=True)


@ordering.command_handler(part_of=DiscountCode)
class ManageDiscountCodesHandler:
    @handle(CreateDiscountCode)
    def create_discount_code(self, command):
        repo = current_domain.repository_for(DiscountCode)
        if repo.find_by_code(command.code) is not None:
            raise ValidationError({"code": [f"Discount code {command.code.upper()} already exists"]})

        discount = DiscountCode.create(
            code=command.code,
            discount_type=command.discount_type,
            value=command.value,
            max_discount=command.max_discount,
            min_order_total=command.min_order_total,
            valid_until=command.valid_until,
            usage_limit=command.usage_limit,
            description=command.description,
        )
        repo.add(discount)
        return str(discount.id)

    @handle(DeactivateDiscountCode)
    def deactivate_discount_code(self, command):
        repo = current_domain.repository_for(DiscountCode)
        discount = repo.get(command.discount_code_id)
        discount.deactivate()
        repo.add(discount)

"""
结算计价服务
按行应用促销，再按叠加策略计算优惠券，结算时核销优惠券
"""

import logging
from typing import List, Optional, Tuple
from decimal import Decimal
from datetime import datetime

from app.core.clock import utc_now, as_naive_utc
from app.core.config import settings
from app.core.exceptions import InvalidArgumentError
from app.models.checkout import CheckoutLine, PricedLine, PriceCalculation, CheckoutResult
from app.models.coupon import CouponValidation
from app.models.product import Product, ProductWithSale
from app.models.sale import Sale, SaleSummary
from app.repositories.product_repository import ProductRepository
from app.services import discount_calculator
from app.services.coupon_service import CouponService
from app.services.sale_resolver import SaleResolver, rank_applicable_sales, first_eligible

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class CheckoutService:
    """结算计价服务"""

    def __init__(
        self,
        product_repo: ProductRepository,
        sale_resolver: SaleResolver,
        coupon_service: CouponService,
        coupon_stacks_with_sales: Optional[bool] = None
    ):
        self.product_repo = product_repo
        self.sale_resolver = sale_resolver
        self.coupon_service = coupon_service
        self.coupon_stacks_with_sales = (
            settings.coupon_stacks_with_sales
            if coupon_stacks_with_sales is None else coupon_stacks_with_sales
        )

    async def _candidates(self, now: Optional[datetime]) -> Tuple[List[Sale], datetime]:
        use_cache = now is None
        now = as_naive_utc(now) if now is not None else utc_now()
        candidates = await self.sale_resolver.get_candidate_sales(now, use_cache=use_cache)
        return candidates, now

    async def line_sale(
        self,
        product_id: str,
        category_id: Optional[str],
        price: Decimal,
        now: Optional[datetime] = None
    ) -> Tuple[Optional[Sale], Decimal]:
        """单件商品生效的促销及优惠金额，促销最低金额按单价判断"""
        price = Decimal(str(price))
        if price < 0:
            raise InvalidArgumentError("商品价格不能为负数", details={"product_id": product_id})

        ranked = await self.sale_resolver.resolve_for_product(product_id, category_id, now)
        sale = first_eligible(ranked, price)
        if sale is None:
            return None, ZERO
        return sale, discount_calculator.apply(sale, price)

    async def compute_line_discount(
        self,
        product_id: str,
        category_id: Optional[str],
        price: Decimal,
        now: Optional[datetime] = None
    ) -> Decimal:
        """单件商品的促销优惠金额"""
        _, discount = await self.line_sale(product_id, category_id, price, now)
        return discount

    async def list_products_with_sales(
        self,
        category_id: Optional[str] = None,
        on_sale: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
        now: Optional[datetime] = None
    ) -> List[ProductWithSale]:
        """商品列表附带当前最佳促销和促销价"""
        candidates, now = await self._candidates(now)
        db_products = await self.product_repo.list_products(category_id=category_id, limit=limit, offset=offset)

        products = []
        for db_product in db_products:
            product = self.product_repo.to_model(db_product)
            ranked = rank_applicable_sales(candidates, product.product_id, product.category_id, now)
            sale = first_eligible(ranked, product.price)
            discount = discount_calculator.apply(sale, product.price) if sale else ZERO
            decorated = ProductWithSale(
                **product.model_dump(),
                sale=SaleSummary.from_sale(sale) if sale else None,
                sale_discount=discount,
                discounted_price=product.price - discount
            )
            if on_sale is None or decorated.on_sale == on_sale:
                products.append(decorated)
        return products

    async def price_order(
        self,
        user_id: str,
        items: List[CheckoutLine],
        coupon_code: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> PriceCalculation:
        """
        订单计价

        1. 每行取排序第一且满足最低订单金额（按订单原价小计）的促销，促销之间不叠加
        2. 叠加模式：优惠券按促销后小计计算
        3. 非叠加模式：促销总优惠与优惠券（按原价小计）取较大者，相等时保留促销
        """
        candidates, now = await self._candidates(now)

        quantities = {}
        for line in items:
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity

        db_products = await self.product_repo.get_by_product_ids(list(quantities))
        products = {p.product_id: self.product_repo.to_model(p) for p in db_products}
        missing = [product_id for product_id in quantities if product_id not in products]

        original_amount = sum(
            (products[pid].price * qty for pid, qty in quantities.items() if pid in products), ZERO
        )

        priced = [
            self._price_line(products[pid], qty, candidates, original_amount, now)
            for pid, qty in quantities.items() if pid in products
        ]
        calculation = self._summarize(priced, original_amount)
        calculation.missing_product_ids = missing

        if not coupon_code:
            return calculation

        calculation.coupon_code = coupon_code.strip().upper()

        if self.coupon_stacks_with_sales:
            validation = await self.coupon_service.validate_coupon(
                coupon_code, user_id, calculation.original_amount - calculation.sale_discount, now
            )
            return self._apply_coupon(calculation, validation)

        validation = await self.coupon_service.validate_coupon(
            coupon_code, user_id, calculation.original_amount, now
        )
        if validation.is_valid and validation.estimated_discount > calculation.sale_discount:
            return self._apply_coupon(self._without_sales(calculation), validation)

        if validation.is_valid:
            calculation.coupon_id = validation.coupon.coupon_id
            calculation.coupon_error_message = "促销优惠更大，未使用优惠券"
            return calculation

        return self._apply_coupon(calculation, validation)

    async def checkout(
        self,
        order_id: str,
        user_id: str,
        items: List[CheckoutLine],
        coupon_code: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> CheckoutResult:
        """计价并核销优惠券，同一订单可安全重试"""
        calculation = await self.price_order(user_id, items, coupon_code, now)
        result = CheckoutResult(order_id=order_id, calculation=calculation)

        if not coupon_code:
            return result

        if not calculation.coupon_applied:
            # 重试时以本订单已有的核销记录为准，无论优惠券此后过期、停用还是次数已满
            if calculation.coupon_id:
                replayed = await self.coupon_service.find_order_redemption(calculation.coupon_id, order_id)
                if replayed is not None:
                    if not self.coupon_stacks_with_sales:
                        calculation = self._without_sales(calculation)
                        result.calculation = calculation
                    self._use_recorded_discount(calculation, replayed.usage.discount_amount)
                    result.coupon_redeemed = True
                    result.usage = replayed.usage
                    return result
            result.error_kind = calculation.coupon_error_kind
            result.error_message = calculation.coupon_error_message
            return result

        coupon = await self.coupon_service.get_coupon(calculation.coupon_id)
        redemption = await self.coupon_service.redeem_validated(
            coupon, user_id, order_id, calculation.coupon_discount
        )

        if redemption.success:
            if redemption.replayed:
                self._use_recorded_discount(calculation, redemption.usage.discount_amount)
            result.coupon_redeemed = True
            result.usage = redemption.usage
            return result

        # 核销失败时订单按无优惠券结算
        calculation.final_amount += calculation.coupon_discount
        calculation.coupon_discount = ZERO
        calculation.coupon_applied = False
        calculation.coupon_error_kind = redemption.error_kind
        calculation.coupon_error_message = redemption.error_message
        result.error_kind = redemption.error_kind
        result.error_message = redemption.error_message
        return result

    def _price_line(
        self,
        product: Product,
        quantity: int,
        candidates: List[Sale],
        order_amount: Decimal,
        now: datetime
    ) -> PricedLine:
        ranked = rank_applicable_sales(candidates, product.product_id, product.category_id, now)
        sale = first_eligible(ranked, order_amount)
        unit_discount = discount_calculator.apply(sale, product.price) if sale else ZERO
        subtotal = product.price * quantity
        sale_discount = unit_discount * quantity
        return PricedLine(
            product_id=product.product_id,
            product_name=product.name,
            category_id=product.category_id,
            quantity=quantity,
            unit_price=product.price,
            sale_id=sale.sale_id if sale else None,
            unit_discount=unit_discount,
            unit_final_price=product.price - unit_discount,
            subtotal=subtotal,
            sale_discount=sale_discount,
            final_subtotal=subtotal - sale_discount
        )

    def _summarize(self, priced: List[PricedLine], original_amount: Decimal) -> PriceCalculation:
        sale_discount = sum((line.sale_discount for line in priced), ZERO)
        return PriceCalculation(
            items=priced,
            original_amount=discount_calculator.quantize_money(original_amount),
            sale_discount=discount_calculator.quantize_money(sale_discount),
            final_amount=discount_calculator.quantize_money(original_amount - sale_discount)
        )

    def _reset(self, calculation: PriceCalculation, priced: List[PricedLine]) -> PriceCalculation:
        reset = self._summarize(priced, calculation.original_amount)
        reset.coupon_code = calculation.coupon_code
        reset.missing_product_ids = calculation.missing_product_ids
        return reset

    def _without_sales(self, calculation: PriceCalculation) -> PriceCalculation:
        unsaled = [
            line.model_copy(update={
                "sale_id": None,
                "unit_discount": ZERO,
                "unit_final_price": line.unit_price,
                "sale_discount": ZERO,
                "final_subtotal": line.subtotal,
            })
            for line in calculation.items
        ]
        reset = self._reset(calculation, unsaled)
        reset.coupon_id = calculation.coupon_id
        return reset

    def _apply_coupon(self, calculation: PriceCalculation, validation: CouponValidation) -> PriceCalculation:
        if validation.coupon is not None:
            calculation.coupon_id = validation.coupon.coupon_id
        if not validation.is_valid:
            calculation.coupon_error_kind = validation.error_kind
            calculation.coupon_error_message = validation.error_message
            return calculation

        calculation.coupon_applied = True
        calculation.coupon_discount = validation.estimated_discount
        calculation.final_amount = calculation.final_amount - validation.estimated_discount
        return calculation

    def _use_recorded_discount(self, calculation: PriceCalculation, recorded: Decimal) -> None:
        """订单已核销过时以账本记录的优惠金额为准"""
        calculation.final_amount = max(ZERO, calculation.final_amount + calculation.coupon_discount - recorded)
        calculation.coupon_discount = recorded
        calculation.coupon_applied = True
        calculation.coupon_error_kind = None
        calculation.coupon_error_message = None

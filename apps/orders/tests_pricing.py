import random
from decimal import Decimal

from django.test import SimpleTestCase

from . import pricing, shipping
from .pricing import FeeAdjustment, PaymentMethod, PaymentMethodCatalog, PaymentSelection, PaymentType
from .session import CheckoutSession
from .shipping import GlobalShippingSettings, OrderLine, ShippingSettings

D = Decimal
NO_GLOBAL = GlobalShippingSettings()


def line(product_id="p", base="100", sale=None, qty=1, threshold=None, cost=None, fee=None):
    return OrderLine(
        product_id=product_id,
        quantity=qty,
        base_price=D(base),
        sale_price=D(sale) if sale is not None else None,
        shipping_settings=ShippingSettings(
            free_shipping_threshold=D(threshold) if threshold is not None else None,
            default_shipping_cost=D(cost) if cost is not None else None,
            service_fee=D(fee) if fee is not None else None,
        ),
    )


def quote(lines, methods=(), selection=None, global_settings=NO_GLOBAL):
    catalog = PaymentMethodCatalog(methods)
    result = shipping.resolve(lines, global_settings)
    return pricing.compute(lines, catalog.resolve(selection), result)


COD = PaymentMethod(id="cod", name="Cash on Delivery", type=PaymentType.COD, fee=D("0"))


class ShippingResolverTests(SimpleTestCase):
    def test_threshold_met_gives_free_shipping(self):
        result = shipping.resolve([line("a", base="200", threshold="150", cost="10")], NO_GLOBAL)

        self.assertEqual(result.shipping_cost, D("0"))
        self.assertTrue(result.is_free_shipping)
        self.assertEqual(result.deciding_product_id, "a")
        self.assertIn("product override", result.reason)

    def test_any_line_threshold_frees_whole_order(self):
        lines = [line("a", base="50", cost="20"), line("b", base="120", threshold="150", cost="10")]
        # subtotal 170 >= 150 set on b
        self.assertEqual(shipping.resolve(lines, NO_GLOBAL).shipping_cost, D("0"))

    def test_threshold_on_subtotal_not_line_total(self):
        lines = [line("a", base="100", threshold="150", cost="10"), line("b", base="60", cost="5")]
        result = shipping.resolve(lines, NO_GLOBAL)
        self.assertEqual(result.shipping_cost, D("0"))
        self.assertEqual(result.deciding_product_id, "a")

    def test_zero_threshold_never_frees(self):
        result = shipping.resolve([line("a", base="500", threshold="0", cost="10")], NO_GLOBAL)
        self.assertEqual(result.shipping_cost, D("10"))

    def test_max_not_sum(self):
        result = shipping.resolve([line("a", cost="5"), line("b", cost="8")], NO_GLOBAL)

        self.assertEqual(result.shipping_cost, D("8"))
        self.assertEqual(result.deciding_product_id, "b")

    def test_tie_keeps_first_line(self):
        result = shipping.resolve([line("a", cost="8"), line("b", cost="8")], NO_GLOBAL)
        self.assertEqual(result.deciding_product_id, "a")

    def test_global_fallback_applied_once(self):
        global_settings = GlobalShippingSettings(free_shipping_threshold=None, default_shipping_cost=D("12"))
        result = shipping.resolve([line("a"), line("b"), line("c")], global_settings)

        self.assertEqual(result.shipping_cost, D("12"))
        self.assertIn("global setting", result.reason)

    def test_global_threshold_used_when_product_has_none(self):
        global_settings = GlobalShippingSettings(free_shipping_threshold=D("100"), default_shipping_cost=D("12"))
        result = shipping.resolve([line("a", base="100")], global_settings)

        self.assertEqual(result.shipping_cost, D("0"))
        self.assertIn("global setting", result.reason)

    def test_product_override_beats_global(self):
        global_settings = GlobalShippingSettings(free_shipping_threshold=D("50"), default_shipping_cost=D("12"))
        result = shipping.resolve([line("a", base="100", threshold="1000", cost="3")], global_settings)
        self.assertEqual(result.shipping_cost, D("3"))

    def test_missing_costs_count_as_zero(self):
        result = shipping.resolve([line("a"), line("b", cost="4")], NO_GLOBAL)
        self.assertEqual(result.shipping_cost, D("4"))

    def test_service_fees_add_up(self):
        result = shipping.resolve([line("a", fee="1000"), line("b", fee="2000"), line("c")], NO_GLOBAL)
        self.assertEqual(result.service_fee, D("3000"))

    def test_empty_lines(self):
        result = shipping.resolve([], GlobalShippingSettings(default_shipping_cost=D("12")))
        self.assertEqual((result.shipping_cost, result.service_fee, result.reason), (D("0"), D("0"), "no items"))


class PaymentCatalogTests(SimpleTestCase):
    def setUp(self):
        self.catalog = PaymentMethodCatalog.from_settings([
            {"id": "cod", "name": "Cash on Delivery", "type": "COD", "fee": 0},
            {"id": "bca", "name": "BCA Virtual Account", "type": "virtual_account", "fee": 4000},
            {"id": "mandiri", "name": "Mandiri Virtual Account", "type": "VIRTUAL_ACCOUNT", "fee": 3000},
            {"id": "qris", "name": "QRIS", "type": "QRIS", "fee": -1500},
            {"id": "bni", "name": "BNI", "type": "VIRTUAL_ACCOUNT", "fee": 1, "isActive": False},
        ])

    def test_inactive_methods_are_dropped(self):
        self.assertEqual([m.id for m in self.catalog], ["cod", "bca", "mandiri", "qris"])

    def test_virtual_account_matches_on_channel(self):
        resolved = self.catalog.resolve(PaymentSelection("VIRTUAL_ACCOUNT", "mandiri"))

        self.assertTrue(resolved.matched)
        self.assertEqual(resolved.label, "Mandiri Virtual Account")
        self.assertEqual(resolved.adjustment.signed, D("3000"))

    def test_other_types_match_on_type(self):
        self.assertEqual(self.catalog.resolve(PaymentSelection("QRIS")).method.id, "qris")
        self.assertEqual(self.catalog.resolve(PaymentSelection("COD")).method.id, "cod")

    def test_unmatched_uses_fallback_label_and_no_fee(self):
        resolved = self.catalog.resolve(PaymentSelection("VIRTUAL_ACCOUNT", "bni"))

        self.assertFalse(resolved.matched)
        self.assertEqual(resolved.label, "Virtual Account • BNI")
        self.assertTrue(resolved.adjustment.is_zero)

    def test_fallback_labels(self):
        empty = PaymentMethodCatalog()
        self.assertEqual(empty.resolve(PaymentSelection("COD")).label, "Cash on Delivery (COD)")
        self.assertEqual(empty.resolve(PaymentSelection("CREDIT_CARD")).label, "Credit/Debit Card")
        self.assertEqual(empty.resolve(PaymentSelection("PAYPAL")).label, "Unknown payment method")
        self.assertEqual(empty.resolve(None).label, "Unknown payment method")


class FeeAdjustmentTests(SimpleTestCase):
    def test_negative_fee_is_a_discount(self):
        adjustment = FeeAdjustment.from_signed(D("-1500"))

        self.assertEqual(adjustment.kind, FeeAdjustment.DISCOUNT)
        self.assertEqual(adjustment.amount, D("1500"))
        self.assertEqual(adjustment.signed, D("-1500"))
        self.assertEqual(adjustment.label, "Discount")
        self.assertEqual(adjustment.display("Rp"), "-Rp 1500")

    def test_positive_fee_is_a_surcharge(self):
        adjustment = FeeAdjustment.from_signed("4000")

        self.assertEqual(adjustment.kind, FeeAdjustment.SURCHARGE)
        self.assertEqual(adjustment.label, "Surcharge")
        self.assertEqual(adjustment.display(), "+4000")

    def test_zero(self):
        adjustment = FeeAdjustment.from_signed(None)
        self.assertTrue(adjustment.is_zero)
        self.assertEqual(adjustment.label, "")
        self.assertEqual(adjustment.display(), "0")


class BreakdownTests(SimpleTestCase):
    def scenario_lines(self, threshold="150"):
        return [
            line("A", base="100", sale="80", qty=2, threshold=threshold, cost="10"),
            line("B", base="50", qty=1, cost="5", fee="1000"),
        ]

    def test_scenario_threshold_met(self):
        breakdown = quote(self.scenario_lines(), [COD], PaymentSelection("COD"))

        self.assertEqual(breakdown.subtotal, D("210"))
        self.assertEqual(breakdown.discount, D("40"))
        self.assertEqual(breakdown.shipping_cost, D("0"))
        self.assertEqual(breakdown.service_fee, D("1000"))
        self.assertEqual(breakdown.payment_fee, D("0"))
        self.assertEqual(breakdown.total, D("1210"))

    def test_scenario_no_threshold_met(self):
        breakdown = quote(self.scenario_lines(threshold=None), [COD], PaymentSelection("COD"))

        self.assertEqual(breakdown.shipping_cost, D("10"))
        self.assertEqual(breakdown.total, D("1220"))

    def test_payment_discount_lowers_total(self):
        qris = PaymentMethod(id="qris", name="QRIS", type=PaymentType.QRIS, fee=D("-1500"))
        breakdown = quote(self.scenario_lines(), [qris], PaymentSelection("QRIS"))

        self.assertEqual(breakdown.payment_fee, D("-1500"))
        self.assertEqual(breakdown.total, D("1210") - D("1500"))
        self.assertEqual(breakdown.as_dict()["paymentFeeLabel"], "Discount")
        self.assertEqual(breakdown.as_dict()["paymentFeeDisplay"], "-1500")

    def test_discount_zero_without_sale(self):
        breakdown = quote([line("a", base="100", qty=3), line("b", base="20", sale="25")])
        self.assertEqual(breakdown.discount, D("0"))

    def test_sale_above_base_is_ignored(self):
        breakdown = quote([line("a", base="100", sale="150", qty=2)])
        self.assertEqual(breakdown.subtotal, D("200"))
        self.assertEqual(breakdown.discount, D("0"))

    def test_empty_breakdown(self):
        breakdown = quote([])
        self.assertTrue(breakdown.is_empty)
        self.assertEqual(breakdown.total, D("0"))

    def test_missing_numbers_never_raise(self):
        breakdown = pricing.compute([line("a")], None, None)
        self.assertEqual(breakdown.shipping_cost, D("0"))
        self.assertEqual(breakdown.total, D("100"))

    def test_non_finite_numbers_never_raise(self):
        card = PaymentMethod(id="cc", name="Card", type=PaymentType.QRIS, fee=D("NaN"))
        lines = [line("a", base="100", sale="NaN", qty=2, threshold="NaN", cost="NaN", fee="Infinity")]

        breakdown = quote(lines, [card], PaymentSelection("QRIS"))

        self.assertEqual(breakdown.subtotal, D("200"))
        self.assertEqual(breakdown.discount, D("0"))
        self.assertEqual(breakdown.shipping_cost, D("0"))
        self.assertEqual(breakdown.service_fee, D("0"))
        self.assertEqual(breakdown.payment_fee, D("0"))
        self.assertEqual(breakdown.total, D("200"))

    def test_total_identity_and_discount_hold_for_random_carts(self):
        rng = random.Random(20240601)
        methods = [
            PaymentMethod(id="cod", name="COD", type=PaymentType.COD, fee=D("0")),
            PaymentMethod(id="qris", name="QRIS", type=PaymentType.QRIS, fee=D("-2500")),
            PaymentMethod(id="bca", name="BCA", type=PaymentType.VIRTUAL_ACCOUNT, fee=D("4000")),
        ]
        selections = [PaymentSelection("COD"), PaymentSelection("QRIS"), PaymentSelection("VIRTUAL_ACCOUNT", "bca")]

        def money(upper):
            return D(rng.randint(0, upper * 100)) / 100

        def maybe(value):
            return value if rng.random() < 0.6 else None

        for _ in range(300):
            lines = []
            for i in range(rng.randint(0, 5)):
                base = money(1000)
                lines.append(OrderLine(
                    product_id=f"p{i}",
                    quantity=rng.randint(1, 4),
                    base_price=base,
                    sale_price=maybe(money(1200)),
                    shipping_settings=ShippingSettings(
                        free_shipping_threshold=maybe(money(3000)),
                        default_shipping_cost=maybe(money(50)),
                        service_fee=maybe(money(20)),
                    ),
                ))
            global_settings = GlobalShippingSettings(maybe(money(3000)), maybe(money(50)))
            result = shipping.resolve(lines, global_settings)
            breakdown = pricing.compute(
                lines, PaymentMethodCatalog(methods).resolve(rng.choice(selections)), result
            )

            self.assertEqual(
                breakdown.total,
                breakdown.subtotal + breakdown.shipping_cost + breakdown.service_fee
                + breakdown.payment_fee - breakdown.shipping_discount - breakdown.voucher_discount,
            )
            self.assertGreaterEqual(breakdown.discount, 0)
            if not any(ln.sale_price is not None and ln.sale_price < ln.base_price for ln in lines):
                self.assertEqual(breakdown.discount, 0)
            thresholds = [
                shipping._effective(ln.shipping_settings.free_shipping_threshold, global_settings.free_shipping_threshold)[0]
                for ln in lines
            ]
            if any(t is not None and t > 0 and breakdown.subtotal >= t for t in thresholds):
                self.assertEqual(breakdown.shipping_cost, 0)


class CheckoutSessionTests(SimpleTestCase):
    def test_empty_session_lists_everything_missing(self):
        fields = [e["field"] for e in CheckoutSession().validation_errors()]
        self.assertEqual(fields, ["items", "addressId", "paymentMethod"])

    def test_virtual_account_needs_bank(self):
        session = CheckoutSession().with_lines([line()]).with_address("a1").with_payment("virtual_account")
        self.assertEqual(
            session.validation_errors(),
            [{"field": "paymentChannel", "message": "Virtual account bank is required"}],
        )

    def test_unknown_method(self):
        session = CheckoutSession().with_lines([line()]).with_address("a1").with_payment("PAYPAL")
        self.assertEqual(session.validation_errors()[0]["message"], "Invalid payment method")

    def test_notes_length(self):
        session = CheckoutSession().with_lines([line()]).with_address("a1").with_payment("COD").with_notes("x" * 501)
        self.assertEqual(session.validation_errors()[0]["field"], "notes")

    def test_with_methods_return_new_sessions(self):
        base = CheckoutSession()
        ready = base.with_lines([line()]).with_address("a1").with_payment("cod")

        self.assertFalse(base.is_ready)
        self.assertTrue(ready.is_ready)
        self.assertTrue(ready.is_cod)
        self.assertEqual(base.lines, ())

    def test_quote(self):
        session = CheckoutSession().with_lines([line(base="100", cost="10", fee="5")]).with_payment("COD")
        breakdown = session.quote(PaymentMethodCatalog([COD]), NO_GLOBAL)

        self.assertEqual(breakdown.total, D("115"))
        self.assertEqual(breakdown.payment_label, "Cash on Delivery")

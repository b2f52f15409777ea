from decimal import Decimal

from checkout_service.draft import OrderDraft, resolve_default
from checkout_service.models import CartLineItem, CheckoutDefaults, DeliveryOption


def test_seeded_from_server_defaults(draft, home, visa, standard):
    assert draft.address == home
    assert draft.payment_method == visa
    assert draft.delivery_option == standard
    assert draft.promo_code is None
    assert draft.tip == 0


def test_resolve_default_prefers_server_choice_then_flag_then_first(home, work):
    assert resolve_default([home, work], work.id) == work
    assert resolve_default([work, home]) == home
    unflagged = [work, home.model_copy(update={"is_default": False})]
    assert resolve_default(unflagged) == work
    assert resolve_default([]) is None
    assert resolve_default([home, work], "missing") == home


def test_delivery_option_defaults_to_first_when_none_flagged():
    a = DeliveryOption(id="a", price=Decimal("1"))
    b = DeliveryOption(id="b", price=Decimal("2"))
    assert OrderDraft(delivery_options=[a, b]).delivery_option == a


def test_missing_server_defaults_fall_back_to_flags(meal_line, home, work, visa, paypal):
    defaults = CheckoutDefaults(addresses=[work, home], payment_methods=[paypal, visa])
    draft = OrderDraft.from_defaults(defaults, [meal_line])
    assert draft.address == home
    assert draft.payment_method == paypal


def test_selecting_replaces_previous_selection(draft, work, paypal, express):
    draft.set_address(work)
    draft.set_payment_method(paypal)
    draft.set_delivery_option(express)
    assert draft.address == work
    assert draft.payment_method == paypal
    assert draft.delivery_option == express
    assert draft.summary.delivery_fee == Decimal("7.99")


def test_every_mutation_notifies_with_fresh_summary(draft, express):
    seen = []
    draft.subscribe(lambda d, summary: seen.append(summary.total))
    draft.set_delivery_option(express)
    draft.set_tip(5)
    assert seen == [Decimal("46.96"), Decimal("51.96")]
    assert draft.revision == 2


def test_tip_is_never_negative(draft):
    draft.set_tip(-3)
    assert draft.tip == 0
    draft.set_tip("2.5")
    assert draft.tip == Decimal("2.50")


def test_promo_code_is_pending_until_confirmed(draft):
    promo = draft.apply_promo_code(" save10 ")
    assert promo.code == "SAVE10"
    assert promo.applied and not promo.confirmed
    assert draft.summary.discount == 0

    assert draft.confirm_promo_code("SAVE10", Decimal("10"), "$10 off")
    assert draft.promo_code.confirmed
    assert draft.summary.discount == Decimal("10.00")


def test_applying_new_promo_code_replaces_previous(draft):
    draft.apply_promo_code("FIRST")
    draft.confirm_promo_code("FIRST", Decimal("5"))
    draft.apply_promo_code("SECOND")
    assert draft.promo_code.code == "SECOND"
    assert draft.summary.discount == 0
    # a late answer for the replaced code changes nothing
    assert not draft.confirm_promo_code("FIRST", Decimal("5"))
    assert not draft.revert_promo_code("FIRST")
    assert draft.promo_code.code == "SECOND"


def test_empty_promo_code_is_ignored(draft):
    assert draft.apply_promo_code("   ") is None
    assert draft.promo_code is None
    assert draft.revision == 0


def test_remove_promo_code(draft):
    draft.apply_promo_code("FREESHIP")
    draft.remove_promo_code()
    assert draft.promo_code is None


def test_decrement_below_one_is_a_noop(draft):
    draft.update_line_item_quantity(0, 1)
    revision = draft.revision
    draft.decrement_quantity(0)
    draft.update_line_item_quantity(0, 0)
    assert draft.line_items[0].quantity == 1
    assert draft.revision == revision


def test_quantity_changes_reprice(draft):
    draft.increment_quantity(0)
    assert draft.line_items[0].quantity == 4
    assert draft.summary.subtotal == Decimal("48.00")
    draft.decrement_quantity(0)
    assert draft.summary.subtotal == Decimal("36.00")


def test_cart_changes_drop_server_tax(draft, simple_item):
    draft.set_server_tax(Decimal("3.00"))
    assert draft.summary.tax == Decimal("3.00")
    draft.add_line_item(CartLineItem(item=simple_item))
    assert draft.server_tax is None
    assert draft.summary.subtotal == Decimal("46.00")
    assert draft.summary.tax == Decimal("3.80")


def test_remove_line_item(draft, simple_item):
    index = draft.add_line_item(CartLineItem(item=simple_item, quantity=2))
    removed = draft.remove_line_item(index)
    assert removed.quantity == 2
    assert len(draft.line_items) == 1


def test_special_instructions(draft):
    draft.set_special_instructions("Ring twice")
    assert draft.special_instructions == "Ring twice"
    draft.set_special_instructions(None)
    assert draft.special_instructions == ""


def test_cart_and_delivery_changes_unconfirm_promo_code(draft, simple_item, express):
    draft.apply_promo_code("WELCOME20")
    draft.confirm_promo_code("WELCOME20", Decimal("7.20"))

    draft.update_line_item_quantity(0, 1)
    assert draft.promo_code.code == "WELCOME20"
    assert not draft.promo_code.confirmed
    assert draft.summary.discount == 0

    draft.confirm_promo_code("WELCOME20", Decimal("2.40"))
    draft.set_delivery_option(express)
    assert not draft.promo_code.confirmed

    draft.confirm_promo_code("WELCOME20", Decimal("2.40"))
    draft.add_line_item(CartLineItem(item=simple_item))
    assert draft.promo_code.discount_amount == 0

    draft.confirm_promo_code("WELCOME20", Decimal("4.40"))
    draft.remove_line_item(1)
    assert not draft.promo_code.confirmed
    assert draft.summary.discount == 0

from services.classify import PaymentType, classify


def test_empty_input_is_cash_only():
    result = classify([])
    assert result.payment_type is PaymentType.CASH_ONLY
    assert not result.is_mixed


def test_all_linked_is_credit_only():
    result = classify([("VIP", True), ("Corporate", True)])
    assert result.payment_type is PaymentType.CREDIT_ONLY
    assert result.credit_categories == {"VIP", "Corporate"}
    assert result.non_credit_categories == frozenset()


def test_all_unlinked_is_cash_only():
    result = classify([("Adult", False), ("Child", False)])
    assert result.payment_type is PaymentType.CASH_ONLY
    assert result.non_credit_categories == {"Adult", "Child"}


def test_mixed_categories():
    result = classify([("VIP", True), ("Standard", False), ("VIP", True)])
    assert result.payment_type is PaymentType.MIXED_ERROR
    assert result.is_mixed
    assert result.credit_categories == {"VIP"}
    assert result.non_credit_categories == {"Standard"}


def test_accepts_generators():
    pairs = (("Adult", linked) for linked in (False, False))
    assert classify(pairs).payment_type is PaymentType.CASH_ONLY

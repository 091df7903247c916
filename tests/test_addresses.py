from storefront.checkout.addresses import ADDRESS_TOTAL_LIMIT, fit_address


def test_short_address_is_unchanged():
    address = fit_address({"attention": "Ada Lovelace", "address": "12 Analytical Way", "city": "Austin", "state": "TX", "zip": "73301"})

    assert address["address"] == "12 Analytical Way"
    assert address["street2"] == ""
    assert address["phone"] == ""


def test_fields_are_clipped_then_trimmed_to_total_limit():
    address = fit_address(
        {
            "attention": "A" * 30,
            "address": "B" * 40,
            "street2": "C" * 30,
            "city": "D" * 25,
            "state": "California",
            "zip": "73301-1234",
            "country": "USA",
            "phone": "+1 555 010 0000 x12",
        }
    )

    assert sum(len(v) for v in address.values()) == ADDRESS_TOTAL_LIMIT
    # least useful fields go first
    assert address["phone"] == ""
    assert address["street2"] == ""
    assert address["country"] == "US"
    assert address["attention"] == "A" * 23
    # the street line keeps its clipped length
    assert address["address"] == "B" * 35
    assert address["city"] == "D" * 20
    assert address["state"] == "California"

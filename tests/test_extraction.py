from slopecast.extraction import (
    OpenTotal,
    cm_to_inches,
    extract_date,
    extract_number,
    extract_of_pattern,
    extract_percentage,
    km_to_miles,
    meters_to_feet,
    round_half_up,
)


def test_extract_number_handles_separators_and_decimals():
    assert extract_number("Base: 1,070 m") == 1070
    assert extract_number("144.4 km of slopes") == 144.4
    assert extract_number("no digits here") is None
    assert extract_number(None) is None


def test_extract_of_pattern():
    assert extract_of_pattern("18 of 34 lifts") == OpenTotal(18, 34)
    assert extract_of_pattern("runs 12/40") == OpenTotal(12, 40)
    assert extract_of_pattern("closed") == OpenTotal(None, None)


def test_extract_percentage():
    assert extract_percentage("open: 85 %") == 85
    assert extract_percentage("12.5% groomed") == 12.5
    assert extract_percentage("") is None


def test_extract_date_formats():
    assert extract_date("Last snowfall: 2025-12-03") == "2025-12-03"
    assert extract_date("14 Nov 2025") == "2025-11-14"
    assert extract_date("November 14, 2025") == "2025-11-14"
    assert extract_date("Nov 14, 2025") == "2025-11-14"
    assert extract_date("no date here") is None
    assert extract_date("31 Feb 2025") is None
    assert extract_date("Foo 3 2025") is None


def test_unit_conversions():
    assert cm_to_inches(2.54) == 1.0
    assert cm_to_inches(10, digits=2) == 3.94
    assert cm_to_inches(100, digits=0) == 39
    assert meters_to_feet(1000) == 3281
    assert km_to_miles(10) == 6


def test_halves_round_up():
    assert round_half_up(12.5) == 13
    assert round_half_up(62.5) == 63
    assert round_half_up(-0.5) == 0

from datetime import date

from extraction.facebook import (
    DEFAULT_APARTMENT_NAME,
    build_facebook_row,
    guess_author_name,
    normalize_date,
    process_extracted_data,
    to_listing_view,
)

TODAY = date(2025, 3, 15)


def test_backfills_apartment_rooms_and_amenities_from_text():
    post = "Subleasing my room at Lions Crossing! 2B2B, fully furnished, washer and dryer in unit."
    processed = process_extracted_data({"apartment_name": "N/A"}, post, [], today=TODAY)
    assert processed["apartment_name"] == "Lions Crossing"
    assert processed["bedrooms"] == 2
    assert processed["bathrooms"] == 2
    assert "Furnished" in processed["amenities"]
    assert "Laundry" in processed["amenities"]
    assert processed["description"].startswith("Facebook Post:\n")


def test_unknown_apartment_uses_default_name():
    processed = process_extracted_data({"description": "Nice place"}, "room for rent", [], today=TODAY)
    assert processed["apartment_name"] == DEFAULT_APARTMENT_NAME
    assert processed["bedrooms"] == 1
    assert processed["bathrooms"] == 1


def test_price_coercion():
    assert process_extracted_data({"price": "1,250"}, "", [], today=TODAY)["price"] == 1250.0
    assert "price" not in process_extracted_data({"price": "N/A"}, "", [], today=TODAY)
    assert process_extracted_data({"price": 800}, "", [], today=TODAY)["price"] == 800


def test_academic_year_patterns():
    full = process_extracted_data({"description": "x"}, "Lease for 2025-2026", [], today=TODAY)
    assert (full["start_date"], full["end_date"]) == ("2025-08-01", "2026-07-31")

    short = process_extracted_data({"description": "x"}, "taking over for the 25/26 year", [], today=TODAY)
    assert (short["start_date"], short["end_date"]) == ("2025-08-01", "2026-07-31")

    spring = process_extracted_data({"description": "x"}, "available for the academic year", [], today=TODAY)
    assert (spring["start_date"], spring["end_date"]) == ("2024-08-01", "2025-07-31")

    fall = process_extracted_data({"description": "x"}, "available for the school year", [], today=date(2025, 9, 1))
    assert (fall["start_date"], fall["end_date"]) == ("2025-08-01", "2026-07-31")


def test_model_dates_are_normalized_or_dropped():
    processed = process_extracted_data(
        {"description": "x", "start_date": "May 15, 2025", "end_date": "sometime in summer"},
        "",
        [],
        today=TODAY,
    )
    assert processed["start_date"] == "2025-05-15"
    assert "end_date" not in processed
    assert normalize_date("08/01/2025") == "2025-08-01"
    assert normalize_date("N/A") is None


def test_special_requirements_are_appended_to_description():
    post = "Female only, pure vegetarian household. No smoking please."
    processed = process_extracted_data({"description": "Room in a 3 bedroom"}, post, [], today=TODAY)
    assert processed["special_requirements"] == "pure vegetarian, Female only, No smoking"
    assert processed["description"].endswith("\n\nSpecial Requirements: pure vegetarian, Female only, No smoking")


def test_one_bathroom_phrase():
    post = "2-bedroom apartment with one bathroom"
    processed = process_extracted_data({"description": "x"}, post, [], today=TODAY)
    assert processed["bedrooms"] == 2
    assert processed["bathrooms"] == 1


def test_guess_author_name():
    assert guess_author_name("Jordan Smith\nSubleasing my room") == "Jordan Smith"
    assert guess_author_name("3h\nSubleasing my room") is None
    assert guess_author_name("") is None


def test_row_and_view_model():
    parsed = {
        "apartment_name": "The Rise",
        "price": 750.0,
        "start_date": "2025-05-15",
        "end_date": "2025-08-10",
        "bedrooms": 2,
        "bathrooms": 2,
        "description": "Summer sublease",
        "amenities": ["Pool"],
        "address": "532 E College Ave",
    }
    row = build_facebook_row(
        parsed,
        post_text="Summer sublease at The Rise",
        images=["/apt_defaults/fb.png"],
        facebook_post_link="https://facebook.com/groups/x/posts/1",
        facebook_group_link="https://facebook.com/groups/x",
        author_profile_link=None,
        author_username=None,
    )
    assert row["author_username"] == "Anonymous"
    assert row["display_price"] == 750.0
    assert row["display_dates"] == "2025-05-15 to 2025-08-10"

    view = to_listing_view({**row, "id": "fb-1"})
    assert view["id"] == "fb-1"
    assert view["is_facebook_listing"] is True
    assert view["apartments"] == {"address": "532 E College Ave", "name": "The Rise"}
    assert view["current_rent"] == view["offer_price"] == 750.0
    assert view["user_id"] is None


def test_row_without_price_or_dates():
    row = build_facebook_row(
        {"apartment_name": "The View"},
        post_text="",
        images=[],
        facebook_post_link=None,
        facebook_group_link="g",
        author_profile_link=None,
        author_username="Sam",
    )
    assert row["display_price"] == "Contact for price"
    assert row["display_dates"] == "Contact for dates"
    assert row["author_username"] == "Sam"

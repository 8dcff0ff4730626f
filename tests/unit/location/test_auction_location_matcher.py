"""Unit tests for gazetteer loading and tiered yard matching."""

import json

import pytest

from driver_locator.core.exceptions import GazetteerLoadError
from driver_locator.schemas.matching import AuctionType
from driver_locator.services.location.auction_location_matcher import (
    AuctionLocationMatcher,
    contains_phrase,
    find_match,
    parse_address,
)
from driver_locator.services.location.gazetteer import (
    GazetteerEntry,
    flatten_dataset,
    format_name,
    load_gazetteer,
)


def _entry(city, state, zip_code="", address="", name=None, auction_type=AuctionType.IAAI):
    name = name or f"{city} ({state})"
    return GazetteerEntry(
        auction_type=auction_type,
        state=state,
        city=city,
        address=address,
        zip_code=zip_code,
        original_name=name,
        formatted_name=format_name(auction_type, state, name),
    )


class TestGazetteer:

    def test_copart_names_are_reformatted(self):
        assert format_name(AuctionType.COPART, "VA", "COPART HAMPTON") == "VA - HAMPTON"
        assert format_name(AuctionType.COPART, "NJ", "CRASHEDTOYS TRENTON") == "NJ - TRENTON"

    def test_iaai_names_are_kept(self):
        assert format_name(AuctionType.IAAI, "AZ", "Phoenix (AZ)") == "Phoenix (AZ)"

    def test_flatten_skips_malformed_groups(self):
        data = [
            {"state": "az", "locations": [{"name": "Phoenix (AZ)", "city": "Phoenix", "zip": "85043"}]},
            {"state": "", "locations": [{"name": "Nowhere"}]},
            "not a group",
        ]
        entries = flatten_dataset(data, AuctionType.IAAI)

        assert len(entries) == 1
        assert entries[0].state == "AZ"
        assert entries[0].zip_code == "85043"
        assert entries[0].address == ""

    def test_missing_file(self, tmp_path):
        with pytest.raises(GazetteerLoadError):
            load_gazetteer(tmp_path / "missing.json", AuctionType.IAAI)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(GazetteerLoadError):
            load_gazetteer(path, AuctionType.IAAI)

    def test_non_list_payload(self, tmp_path):
        path = tmp_path / "object.json"
        path.write_text(json.dumps({"state": "AZ"}))
        with pytest.raises(GazetteerLoadError):
            load_gazetteer(path, AuctionType.COPART)


class TestParseAddress:

    def test_city_state_zip(self):
        parsed = parse_address("4721 W Buckeye Rd, Phoenix, AZ 85043")
        assert parsed.zip_code == "85043"
        assert parsed.state == "AZ"
        assert parsed.city == "PHOENIX"

    def test_full_state_name_in_last_segment(self):
        parsed = parse_address("Mesa, Washington 98001")
        assert parsed.state == "WA"
        assert parsed.city == "MESA"
        assert parsed.zip_code == "98001"

    def test_city_word_after_comma_is_not_a_state(self):
        assert parse_address("1200 Phoenix Way, Kent").state is None

    def test_unknown_two_letter_word_is_not_a_state(self):
        parsed = parse_address("Yard on Main St")
        assert parsed.state is None
        assert parsed.city is None

    def test_contains_phrase_respects_word_boundaries(self):
        assert contains_phrase("NEW YORK CITY", "YORK") is True
        assert contains_phrase("YORKTOWN HEIGHTS", "YORK") is False


class TestMatchTiers:

    def test_zip_beats_city(self):
        entries = [
            _entry("Miami", "FL", zip_code="33167"),
            _entry("Hialeah", "FL", zip_code="33010"),
        ]
        strategy, entry = find_match(parse_address("Miami, FL 33010"), entries)
        assert strategy == "zip"
        assert entry.city == "Hialeah"

    def test_state_city(self):
        entries = [_entry("Orlando", "FL"), _entry("Tucson", "AZ")]
        strategy, entry = find_match(parse_address("Tucson, AZ"), entries)
        assert strategy == "state_city"
        assert entry.city == "Tucson"

    def test_city_in_address_rejects_other_state(self):
        entries = [_entry("Springfield", "IL")]
        assert find_match(parse_address("Springfield, MO"), entries) is None

    def test_city_in_address_without_state(self):
        entries = [_entry("Springfield", "IL")]
        strategy, _ = find_match(parse_address("springfield yard"), entries)
        assert strategy == "city_in_address"

    def test_short_city_names_are_not_matched_loosely(self):
        entries = [_entry("Ada", "OK")]
        assert find_match(parse_address("ada yard"), entries) is None

    def test_street_overlap(self):
        entries = [_entry("Hayward", "CA", address="1500 Industrial Parkway Boulevard")]
        strategy, entry = find_match(parse_address("off Industrial Parkway near the yard"), entries)
        assert strategy == "street_overlap"
        assert entry.city == "Hayward"

    def test_street_overlap_ignores_stopwords(self):
        entries = [_entry("Hayward", "CA", address="1500 Main Street Highway")]
        assert find_match(parse_address("Main Street Highway"), entries) is None


class TestAuctionLocationMatcher:

    def test_iaai_is_checked_first(self, matcher):
        result = matcher.match_address("Phoenix, AZ 85043")
        assert result.auction_type == AuctionType.IAAI
        assert result.name == "Phoenix (AZ)"
        assert result.strategy == "zip"

    def test_falls_back_to_copart(self, matcher):
        result = matcher.match_address("Miami, FL")
        assert result.auction_type == AuctionType.COPART
        assert result.name == "FL - MIAMI NORTH"
        assert result.zip_code == "33167"

    def test_zip_beats_city_of_later_dataset(self, matcher):
        result = matcher.match_address("near the Miami lot, 85043")
        assert result.auction_type == AuctionType.IAAI
        assert result.name == "Phoenix (AZ)"

    def test_state_guard_rejects_same_city_name_in_other_state(self, matcher):
        assert matcher.match_address("1200 Phoenix Way, Kent, WA") is None

        # Without a parsed state the city mention is enough
        result = matcher.match_address("1200 Phoenix Way, Kent")
        assert result.name == "Phoenix (AZ)"
        assert result.strategy == "city_in_address"

    def test_state_guard_with_full_state_name(self, matcher):
        assert matcher.match_address("1200 Phoenix Way, Kent, Washington") is None

    def test_state_guard_across_datasets(self, matcher):
        assert matcher.match_address("Auburn, CA") is None

    def test_no_match(self, matcher):
        assert matcher.match_address("somewhere unknown") is None
        assert matcher.match_address("") is None

    def test_constructed_from_entries(self):
        matcher = AuctionLocationMatcher(
            [_entry("Tucson", "AZ", zip_code="85714")],
            [_entry("Tucson", "AZ", zip_code="85706", name="COPART TUCSON", auction_type=AuctionType.COPART)],
        )
        result = matcher.match_address("3030 E Drexel Rd, Tucson, AZ 85706")
        assert result.auction_type == AuctionType.IAAI
        assert result.strategy == "state_city"

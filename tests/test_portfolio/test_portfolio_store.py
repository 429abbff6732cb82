import json
import os

import pytest

from gaino.api.request_utilities import APIError
from gaino.auth.token_provider import StaticTokenProvider
from gaino.portfolio.models import Portfolio
from gaino.portfolio.portfolio_store import PortfolioStore, SaveOutcome
from gaino.portfolio.repair import parse_portfolio, serialize_portfolio

INFY = Portfolio().upsert_lot("NSE:INFY", 2.0, 90.0, "2024-01-01")

# decodable JSON whose quantity no float can hold
OVERFLOWING_QTY = (
    '{"holdings": [{"id": "X", "symbol": "X", "lots": [{"qty": 1'
    + "0" * 400
    + ', "price": 1, "date": "2024-01-01"}]}]}'
).encode("utf-8")
DEEPLY_NESTED = b"[" * 200000


def read_cache(path):
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def write_cache(path, content):
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)


# ---------------------------------------------------------------- load


async def test_load_creates_document_when_missing(store, fake_drive, cache_path):
    portfolio = await store.load()

    assert portfolio == Portfolio()
    file_ids = fake_drive.files_named("portfolio.json")
    assert len(file_ids) == 1
    assert store.file_id == file_ids[0]
    assert parse_portfolio(fake_drive.content_of(file_ids[0])) == Portfolio()
    assert parse_portfolio(read_cache(cache_path)) == Portfolio()


async def test_load_twice_creates_only_one_document(store, fake_drive):
    await store.load()
    await store.load()

    assert len(fake_drive.files_named("portfolio.json")) == 1
    assert fake_drive.calls.count("create") == 1


async def test_two_installs_share_one_document(fake_drive, token_provider, tmp_path):
    first = PortfolioStore(fake_drive, token_provider, str(tmp_path / "a.json"))
    second = PortfolioStore(fake_drive, token_provider, str(tmp_path / "b.json"))

    await first.load()
    await second.load()

    assert first.file_id == second.file_id
    assert len(fake_drive.files_named("portfolio.json")) == 1


async def test_load_prefers_remote_over_cache(store, fake_drive, cache_path):
    fake_drive.add_file("portfolio.json", serialize_portfolio(INFY).encode("utf-8"))
    write_cache(cache_path, serialize_portfolio(Portfolio()))

    portfolio = await store.load()

    assert portfolio == INFY
    assert parse_portfolio(read_cache(cache_path)) == INFY


async def test_load_captures_etag(store, fake_drive):
    file_id = fake_drive.add_file("portfolio.json", serialize_portfolio(INFY).encode("utf-8"))

    await store.load()

    assert store.etag == fake_drive.etag_of(file_id)


async def test_load_reads_etag_header_case_insensitively(store, fake_drive):
    fake_drive.etag_header = "etag"
    file_id = fake_drive.add_file("portfolio.json", serialize_portfolio(INFY).encode("utf-8"))

    await store.load()

    assert store.etag == fake_drive.etag_of(file_id)


async def test_load_tolerates_missing_etag(store, fake_drive):
    fake_drive.omit_etag = True
    fake_drive.add_file("portfolio.json", serialize_portfolio(INFY).encode("utf-8"))

    assert await store.load() == INFY
    assert store.etag is None


async def test_load_repairs_trailing_comma(store, fake_drive, cache_path):
    malformed = serialize_portfolio(INFY).replace("}]}]", "}]},]")
    file_id = fake_drive.add_file("portfolio.json", malformed.encode("utf-8"))

    portfolio = await store.load()

    assert portfolio == INFY
    # the repaired text is cached; the remote document is not rewritten
    assert parse_portfolio(read_cache(cache_path)) == INFY
    assert fake_drive.content_of(file_id) == malformed.encode("utf-8")
    assert "update" not in fake_drive.calls


async def test_load_self_heals_corrupt_remote(store, fake_drive, cache_path):
    file_id = fake_drive.add_file("portfolio.json", b"{this is not json")

    portfolio = await store.load()

    assert portfolio == Portfolio()
    assert parse_portfolio(fake_drive.content_of(file_id)) == Portfolio()
    assert parse_portfolio(read_cache(cache_path)) == Portfolio()
    # repair is an unconditional overwrite
    assert fake_drive.update_preconditions == [None]
    assert store.etag == fake_drive.etag_of(file_id)


async def test_load_self_heals_wrongly_shaped_remote(store, fake_drive):
    file_id = fake_drive.add_file("portfolio.json", b'{"holdings": "oops"}')

    assert await store.load() == Portfolio()
    assert parse_portfolio(fake_drive.content_of(file_id)) == Portfolio()


async def test_failed_self_heal_still_returns_empty_portfolio(store, fake_drive, cache_path):
    fake_drive.add_file("portfolio.json", b"[[[")
    write_cache(cache_path, serialize_portfolio(INFY))
    fake_drive.failing["update"] = APIError("Service Unavailable", status_code=503)

    portfolio = await store.load()

    assert portfolio == Portfolio()
    # the cache is only replaced by a successful heal
    assert parse_portfolio(read_cache(cache_path)) == INFY


async def test_load_falls_back_to_cache_when_offline(offline_store, fake_drive, cache_path):
    write_cache(cache_path, serialize_portfolio(INFY))

    assert await offline_store.load() == INFY
    assert fake_drive.calls == []


async def test_load_falls_back_to_cache_on_network_error(store, fake_drive, cache_path):
    write_cache(cache_path, serialize_portfolio(INFY))
    fake_drive.failing["list"] = APIError("Connection refused")

    assert await store.load() == INFY


async def test_load_falls_back_to_cache_on_download_error(store, fake_drive, cache_path):
    fake_drive.add_file("portfolio.json", serialize_portfolio(Portfolio()).encode("utf-8"))
    fake_drive.download_status = 500
    write_cache(cache_path, serialize_portfolio(INFY))

    assert await store.load() == INFY


async def test_load_falls_back_to_cache_on_blank_remote(store, fake_drive, cache_path):
    fake_drive.add_file("portfolio.json", b"   ")
    write_cache(cache_path, serialize_portfolio(INFY))

    assert await store.load() == INFY
    assert "update" not in fake_drive.calls


async def test_cache_fallback_applies_repair(offline_store, cache_path):
    write_cache(cache_path, serialize_portfolio(INFY).replace("}]}]", "}]},]"))

    assert await offline_store.load() == INFY


async def test_corrupt_cache_is_reset(offline_store, cache_path):
    write_cache(cache_path, "garbage")

    assert await offline_store.load() == Portfolio()
    assert parse_portfolio(read_cache(cache_path)) == Portfolio()


@pytest.mark.parametrize("content", [OVERFLOWING_QTY, DEEPLY_NESTED, b"\xff\xfe garbage"])
async def test_undecodable_cache_is_reset(offline_store, cache_path, content):
    with open(cache_path, "wb") as f:
        f.write(content)

    assert await offline_store.load() == Portfolio()
    assert parse_portfolio(read_cache(cache_path)) == Portfolio()


@pytest.mark.parametrize("content", [OVERFLOWING_QTY, DEEPLY_NESTED])
async def test_load_self_heals_undecodable_remote(store, fake_drive, cache_path, content):
    file_id = fake_drive.add_file("portfolio.json", content)
    write_cache(cache_path, serialize_portfolio(INFY))

    assert await store.load() == Portfolio()
    assert fake_drive.calls[-3:] == ["download", "update", "metadata"]
    assert parse_portfolio(fake_drive.content_of(file_id)) == Portfolio()
    assert parse_portfolio(read_cache(cache_path)) == Portfolio()


async def test_load_without_cache_or_credential_returns_empty(offline_store, cache_path):
    assert await offline_store.load() == Portfolio()
    assert not os.path.exists(cache_path)


async def test_load_survives_failing_token_provider(fake_drive, cache_path):
    class BrokenProvider(StaticTokenProvider):
        async def fetch_token(self):
            raise RuntimeError("sign-in expired")

    store = PortfolioStore(fake_drive, BrokenProvider(None), cache_path)

    assert await store.load() == Portfolio()
    assert fake_drive.calls == []


# ---------------------------------------------------------------- save


async def test_save_without_credential_returns_false(offline_store, fake_drive):
    assert await offline_store.save(INFY) is False
    assert await offline_store.save_with_outcome(INFY) is SaveOutcome.NO_CREDENTIAL
    assert fake_drive.calls == []


async def test_save_before_load_returns_false(store, fake_drive):
    assert await store.save_with_outcome(INFY) is SaveOutcome.NO_FILE
    assert fake_drive.calls == []


async def test_save_writes_remote_then_cache(store, fake_drive, cache_path):
    await store.load()
    file_id = store.file_id
    sent_etag = store.etag

    assert await store.save(INFY) is True

    assert parse_portfolio(fake_drive.content_of(file_id)) == INFY
    assert parse_portfolio(read_cache(cache_path)) == INFY
    assert fake_drive.update_preconditions == [sent_etag]
    assert store.etag == fake_drive.etag_of(file_id)
    assert store.etag != sent_etag


async def test_consecutive_saves_use_refreshed_tag(store, fake_drive):
    await store.load()

    assert await store.save(INFY)
    assert await store.save(INFY.upsert_lot("NSE:INFY", 1.0, 100.0, "2024-01-02"))
    assert len(fake_drive.update_preconditions) == 2


async def test_save_without_tag_is_unconditional(store, fake_drive):
    fake_drive.omit_etag = True
    await store.load()

    assert await store.save(INFY) is True
    assert fake_drive.update_preconditions == [None]


async def test_save_retries_once_after_conflict(store, fake_drive, cache_path):
    await store.load()
    file_id = store.file_id
    fake_drive.bump(file_id)  # someone else wrote since our load

    assert await store.save(INFY) is True

    # stale tag first, then the tag read back after the conflict
    assert fake_drive.update_preconditions == ['"v1"', '"v2"']
    assert parse_portfolio(fake_drive.content_of(file_id)) == INFY
    assert parse_portfolio(read_cache(cache_path)) == INFY
    assert store.etag == fake_drive.etag_of(file_id)


async def test_save_gives_up_after_second_conflict(store, fake_drive, cache_path):
    await store.load()
    file_id = store.file_id
    cache_before = read_cache(cache_path)
    content_before = fake_drive.content_of(file_id)
    fake_drive.forced_update_errors = [
        APIError("Precondition Failed", status_code=412),
        APIError("Precondition Failed", status_code=412),
    ]

    assert await store.save_with_outcome(INFY) is SaveOutcome.CONFLICT

    assert len(fake_drive.update_preconditions) == 2
    assert read_cache(cache_path) == cache_before
    assert fake_drive.content_of(file_id) == content_before


async def test_save_conflict_then_transport_error(store, fake_drive, cache_path):
    await store.load()
    cache_before = read_cache(cache_path)
    fake_drive.forced_update_errors = [
        APIError("Precondition Failed", status_code=412),
        APIError("Internal Server Error", status_code=500),
    ]

    assert await store.save_with_outcome(INFY) is SaveOutcome.TRANSPORT_ERROR
    assert read_cache(cache_path) == cache_before


async def test_save_conflict_with_failed_tag_refresh(store, fake_drive):
    await store.load()
    fake_drive.forced_update_errors = [APIError("Precondition Failed", status_code=412)]
    fake_drive.metadata_status = 500

    assert await store.save(INFY) is False
    assert len(fake_drive.update_preconditions) == 1


async def test_save_does_not_retry_other_errors(store, fake_drive, cache_path):
    await store.load()
    cache_before = read_cache(cache_path)
    fake_drive.forced_update_errors = [APIError("Forbidden", status_code=403)]

    assert await store.save_with_outcome(INFY) is SaveOutcome.TRANSPORT_ERROR
    assert len(fake_drive.update_preconditions) == 1
    assert read_cache(cache_path) == cache_before


async def test_save_absorbs_unexpected_errors(store, fake_drive):
    await store.load()
    fake_drive.failing["update"] = RuntimeError("boom")

    assert await store.save(INFY) is False


async def test_save_counts_failed_cache_write_as_failure(fake_drive, token_provider, tmp_path):
    cache_dir = tmp_path / "cache"
    store = PortfolioStore(fake_drive, token_provider, str(cache_dir / "portfolio_cache.json"))
    await store.load()

    # replace the cache file with a directory so the write fails
    os.remove(store.cache_path)
    os.makedirs(store.cache_path)

    assert await store.save_with_outcome(INFY) is SaveOutcome.CACHE_ERROR


async def test_save_then_load_round_trip(store, fake_drive, token_provider, tmp_path):
    await store.load()
    await store.save(INFY)

    other = PortfolioStore(fake_drive, token_provider, str(tmp_path / "other.json"))

    assert await other.load() == INFY


async def test_saved_document_is_plain_json(store, fake_drive):
    await store.load()
    await store.save(INFY)

    data = json.loads(fake_drive.content_of(store.file_id))
    assert data["holdings"][0]["lots"][0] == {"qty": 2.0, "price": 90.0, "date": "2024-01-01"}

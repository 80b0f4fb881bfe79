"""
Tests for Export Service

Tests export job lifecycle, formats (JSON, JSON Lines, CSV, text), running
statistics, trends and expiry.
"""

import json
from datetime import timedelta

import pytest
from utils.mock_utils import create_test_answer, create_test_forum, create_test_questions

from geofora.exceptions import (
    ConsentRequiredError,
    InvalidStatusTransitionError,
    ProviderNotFoundError,
    ServiceError,
    ValidationError,
)
from geofora.jobs.state import EXPORT_TRANSITIONS, advance
from geofora.schemas.consent import DataScopePolicy
from geofora.schemas.export import DateRange, ExportConfig, ExportStatus
from geofora.services.export_service import convert_to_csv, format_export_data


def make_config(**overrides) -> ExportConfig:
    values = {
        "organization_id": 1,
        "provider": "anthropic",
        "format": "json",
        "content_types": ["questions"],
    }
    values.update(overrides)
    return ExportConfig(**values)


@pytest.fixture
async def consented(services):
    """Organization 1 has consented to share with anthropic (provider 2)."""
    await services.consent.grant_consent(1, 2, DataScopePolicy(), "1.0.0")
    return services


async def run_export(services, config: ExportConfig):
    job = await services.exports.create_export(config)
    await services.dispatcher.drain()
    return await services.exports.get_export_status(job.id)


class TestExportConfigValidation:
    """validate_export_config collects every problem"""

    def test_valid_config(self, services):
        assert services.exports.validate_export_config(make_config()) == []

    def test_all_errors_reported(self, services, clock):
        config = ExportConfig(
            organization_id=1,
            provider="",
            format="xml",
            content_types=[],
            max_records=0,
            date_range=DateRange(start=clock.now, end=clock.now - timedelta(days=1)),
        )

        errors = services.exports.validate_export_config(config)

        assert errors == [
            "Provider is required",
            "Valid format is required",
            "At least one content type is required",
            "Max records must be greater than 0",
            "Start date must be before end date",
        ]

    def test_unknown_content_type(self, services):
        errors = services.exports.validate_export_config(make_config(content_types=["questions", "polls"]))
        assert errors == ["Unsupported content type: polls"]

    @pytest.mark.asyncio
    async def test_create_export_rejects_invalid_config(self, services):
        with pytest.raises(ValidationError) as exc_info:
            await services.exports.create_export(make_config(format="pdf"))

        assert exc_info.value.details["errors"] == ["Valid format is required"]
        assert await services.exports.list_exports() == []

    @pytest.mark.asyncio
    async def test_create_export_unknown_provider(self, services):
        with pytest.raises(ProviderNotFoundError):
            await services.exports.create_export(make_config(provider="skynet"))

    @pytest.mark.asyncio
    async def test_create_export_inactive_provider(self, services):
        with pytest.raises(ProviderNotFoundError):
            await services.exports.create_export(make_config(provider="legacy"))

    @pytest.mark.asyncio
    async def test_include_consent_requires_grant(self, services):
        with pytest.raises(ConsentRequiredError) as exc_info:
            await services.exports.create_export(make_config(include_consent=True))

        assert exc_info.value.message == "No consent found for provider: anthropic"
        assert await services.exports.list_exports() == []


class TestExportLifecycle:
    """Background processing moves jobs through their states"""

    @pytest.mark.asyncio
    async def test_create_export_returns_pending_job(self, consented, clock):
        job = await consented.exports.create_export(make_config())

        assert job.status == ExportStatus.PENDING
        assert job.id.startswith("export_")
        assert job.expires_at == clock.now + timedelta(days=7)
        assert consented.exports.get_export_statistics().total_exports == 1

        await consented.dispatcher.drain()

    @pytest.mark.asyncio
    async def test_csv_export_respects_max_records(self, consented, session_factory, clock):
        await create_test_questions(session_factory, 5, clock.now - timedelta(days=1))

        job = await run_export(consented, make_config(format="csv", max_records=2))

        assert job.status == ExportStatus.COMPLETED
        assert job.record_count == 2
        assert job.download_url == f"https://geofora.com/api/exports/download/{job.id}"

        artifact = await consented.exports.get_export_artifact(job.id)
        lines = artifact.content.split("\n")
        assert len(lines) == 3
        assert lines[0] == "type,id,content,createdAt,updatedAt"
        assert artifact.media_type == "text/csv"
        assert job.file_size == len(artifact.content.encode("utf-8"))

    @pytest.mark.asyncio
    async def test_newest_records_exported_first(self, consented, session_factory, clock):
        questions = await create_test_questions(session_factory, 5, clock.now - timedelta(days=1))

        job = await run_export(consented, make_config(max_records=2))

        items = json.loads((await consented.exports.get_export_artifact(job.id)).content)
        assert [item["id"] for item in items] == [questions[4].id, questions[3].id]

    @pytest.mark.asyncio
    async def test_json_export_items(self, consented, session_factory, clock):
        await create_test_questions(session_factory, 3, clock.now - timedelta(days=1), content="ask Jane Doe")

        job = await run_export(consented, make_config(include_metadata=True))

        items = json.loads((await consented.exports.get_export_artifact(job.id)).content)
        assert len(items) == 3
        for item in items:
            assert item["type"] == "question"
            assert item["content"] == "ask [REDACTED]"
            assert item["metadata"]["provider"] == "anthropic"
            assert item["metadata"]["anonymizationLevel"] == "standard"
            assert item["metadata"]["createdAt"]

    @pytest.mark.asyncio
    async def test_metadata_omitted_by_default(self, consented, session_factory, clock):
        await create_test_questions(session_factory, 1, clock.now - timedelta(days=1))

        job = await run_export(consented, make_config())

        items = json.loads((await consented.exports.get_export_artifact(job.id)).content)
        assert set(items[0]) == {"type", "id", "content"}

    @pytest.mark.asyncio
    async def test_all_content_types(self, consented, session_factory, clock):
        earlier = clock.now - timedelta(days=1)
        questions = await create_test_questions(session_factory, 1, earlier)
        await create_test_answer(session_factory, questions[0].id, "Try restarting it", earlier)
        await create_test_forum(session_factory, "Support", "help with setup", earlier)

        job = await run_export(consented, make_config(format="jsonl", content_types=["questions", "answers", "forums"]))

        lines = (await consented.exports.get_export_artifact(job.id)).content.split("\n")
        assert [json.loads(line)["type"] for line in lines] == ["question", "answer", "forum"]
        assert job.record_count == 3

        stats = await consented.anonymization.get_anonymization_stats(1)
        assert stats.total_records == 3

    @pytest.mark.asyncio
    async def test_date_range_filter(self, consented, session_factory, clock):
        await create_test_questions(session_factory, 5, clock.now - timedelta(days=5))
        start = clock.now - timedelta(days=5, hours=-1)
        end = clock.now - timedelta(days=5, hours=-3)

        job = await run_export(consented, make_config(date_range=DateRange(start=start, end=end)))

        assert job.record_count == 3
        assert job.metadata.date_range.start == start

    @pytest.mark.asyncio
    async def test_export_metadata_captured(self, consented, session_factory, clock):
        await create_test_questions(session_factory, 2, clock.now - timedelta(days=1))

        job = await run_export(consented, make_config())

        metadata = await consented.exports.get_export_metadata(job.id)
        assert metadata.total_records == 2
        assert metadata.anonymized_records == 2
        assert metadata.consent_records == 1
        assert metadata.export_id == job.id
        assert metadata.content_types == ["questions"]

    @pytest.mark.asyncio
    async def test_export_without_consent_fails(self, services, session_factory, clock):
        await create_test_questions(session_factory, 2, clock.now - timedelta(days=1))

        job = await run_export(services, make_config())

        assert job.status == ExportStatus.FAILED
        assert job.error == "No consent for data sharing with this provider"
        assert job.record_count == 0
        assert job.file_size == 0
        assert job.download_url == ""
        assert await services.exports.get_export_artifact(job.id) is None

        stats = services.exports.get_export_statistics()
        assert stats.total_exports == 1
        assert stats.failed_exports == 1
        assert stats.successful_exports == 0

    @pytest.mark.asyncio
    async def test_failed_completion_write_marks_export_failed(self, consented, session_factory, clock, monkeypatch):
        await create_test_questions(session_factory, 2, clock.now - timedelta(days=1))
        store = consented.exports._jobs
        put = store.put

        async def refuse_completed(job_id, job):
            if job.status == ExportStatus.COMPLETED:
                raise RuntimeError("job store unavailable")
            await put(job_id, job)

        monkeypatch.setattr(store, "put", refuse_completed)

        job = await run_export(consented, make_config())

        assert job.status == ExportStatus.FAILED
        assert job.error == "job store unavailable"
        assert job.record_count == 0
        stats = consented.exports.get_export_statistics()
        assert stats.failed_exports == 1
        assert stats.successful_exports == 0

    @pytest.mark.asyncio
    async def test_export_of_nothing_completes_empty(self, consented):
        job = await run_export(consented, make_config(format="csv"))

        assert job.status == ExportStatus.COMPLETED
        assert job.record_count == 0
        assert (await consented.exports.get_export_artifact(job.id)).content == ""

    @pytest.mark.asyncio
    async def test_terminal_state_is_final(self, consented):
        job = await run_export(consented, make_config())

        with pytest.raises(InvalidStatusTransitionError):
            advance(job, ExportStatus.PROCESSING, EXPORT_TRANSITIONS, "Export")


class TestExportQueries:
    """Listing, statistics, trends and expiry"""

    @pytest.mark.asyncio
    async def test_running_statistics(self, consented, session_factory, clock):
        await create_test_questions(session_factory, 2, clock.now - timedelta(days=1))

        first = await run_export(consented, make_config(format="json"))
        second = await run_export(consented, make_config(format="csv"))

        stats = consented.exports.get_export_statistics()
        assert stats.total_exports == 2
        assert stats.successful_exports == 2
        assert stats.total_records_exported == 4
        assert stats.provider_distribution == {"anthropic": 2}
        assert stats.format_distribution == {"json": 1, "csv": 1}
        assert stats.average_export_size == pytest.approx((first.file_size + second.file_size) / 2)

    @pytest.mark.asyncio
    async def test_list_by_provider_and_history(self, services, clock):
        await services.consent.grant_consent(1, 1, DataScopePolicy(), "1.0.0")
        await services.consent.grant_consent(1, 2, DataScopePolicy(), "1.0.0")

        older = await run_export(services, make_config(provider="openai"))
        clock.advance(minutes=5)
        newer = await run_export(services, make_config(provider="anthropic"))

        assert [job.id for job in await services.exports.list_exports_by_provider("openai")] == [older.id]
        assert [job.id for job in await services.exports.get_export_history()] == [newer.id, older.id]
        assert [job.id for job in await services.exports.get_export_history(limit=1)] == [newer.id]

    @pytest.mark.asyncio
    async def test_delete_export(self, consented):
        job = await run_export(consented, make_config())

        assert await consented.exports.delete_export(job.id) is True
        assert await consented.exports.get_export_status(job.id) is None
        assert await consented.exports.get_export_artifact(job.id) is None
        assert await consented.exports.delete_export(job.id) is False

    @pytest.mark.asyncio
    async def test_cleanup_expired_exports(self, consented, clock):
        stale = await run_export(consented, make_config())
        clock.advance(days=3)
        fresh = await run_export(consented, make_config())
        clock.advance(days=5)

        assert await consented.exports.cleanup_expired_exports() == 1
        assert await consented.exports.get_export_status(stale.id) is None
        assert await consented.exports.get_export_status(fresh.id) is not None
        assert await consented.exports.cleanup_expired_exports() == 0

    @pytest.mark.asyncio
    async def test_export_trends(self, consented, clock):
        first = await run_export(consented, make_config(format="json"))
        clock.advance(days=1)
        second = await run_export(consented, make_config(format="txt"))

        trends = await consented.exports.get_export_trends(days=7)

        assert len(trends.daily_exports) == 7
        assert trends.daily_exports[-1].date == clock.now.date().isoformat()
        assert trends.daily_exports[-1].count == 1
        assert trends.daily_exports[-2].count == 1
        assert trends.daily_exports[-2].size == first.file_size
        assert trends.daily_exports[-1].size == second.file_size
        assert sum(bucket.count for bucket in trends.daily_exports[:-2]) == 0
        assert trends.provider_trends == {"anthropic": 2}
        assert trends.format_trends == {"json": 1, "txt": 1}

    def test_supported_formats_and_providers(self, services):
        assert [f.format for f in services.exports.get_supported_formats()] == ["json", "csv", "jsonl", "txt"]
        providers = [p.provider for p in services.exports.get_supported_providers()]
        assert providers == ["openai", "anthropic", "deepseek", "google", "meta", "xai"]


class TestFormatting:
    """Serialization helpers"""

    ITEMS = [
        {"type": "question", "id": 1, "content": 'He said "hi", then left'},
        {"type": "answer", "id": 2, "content": "plain"},
    ]

    def test_json_round_trip(self):
        parsed = json.loads(format_export_data(self.ITEMS, "json"))
        assert len(parsed) == 2
        assert all({"type", "id", "content"} <= set(item) for item in parsed)

    def test_csv_escapes_quotes(self):
        lines = convert_to_csv(self.ITEMS).split("\n")

        assert len(lines) == 3
        assert lines[1] == 'question,1,"He said ""hi"", then left",,'
        assert lines[2] == 'answer,2,"plain",,'

    def test_csv_empty(self):
        assert convert_to_csv([]) == ""

    def test_jsonl_one_object_per_line(self):
        lines = format_export_data(self.ITEMS, "jsonl").split("\n")
        assert [json.loads(line)["id"] for line in lines] == [1, 2]

    def test_txt_blocks(self):
        assert format_export_data(self.ITEMS, "txt") == 'QUESTION: He said "hi", then left\n\nANSWER: plain'

    def test_unsupported_format(self):
        with pytest.raises(ServiceError):
            format_export_data(self.ITEMS, "xml")

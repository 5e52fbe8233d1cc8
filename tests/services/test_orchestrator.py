from __future__ import annotations

from datetime import datetime, timezone

import pytest

from leadscout.models.catalog import EvidenceSignalCatalog
from leadscout.models.job import JobStatus
from leadscout.models.lead import CompanyFacts, Contact
from leadscout.models.profile import TargetProfile
from leadscout.services.leadgen.dedupe import EXCLUDED_DOMAINS
from leadscout.services.leadgen.errors import JobCancelledError, JobStoreError
from leadscout.services.leadgen.jobs import JobManager
from leadscout.services.leadgen.matcher import SignalMatcher
from leadscout.services.leadgen.orchestrator import LeadGenerationPipeline, PipelineConfig
from leadscout.services.leadgen.providers import PerplexityEnrichmentProvider
from leadscout.services.leadgen.repositories import InMemoryJobStore
from leadscout.services.leadgen.runner import JobRunner
from tests.helpers.fake_providers import (
    EnrichmentScript,
    FakeEnrichmentProvider,
    FakeSearchProvider,
    build_catalog,
    hit,
)

RUN_AT = datetime(2024, 11, 1, 12, 0, tzinfo=timezone.utc)


def _config(**overrides) -> PipelineConfig:
    values = {
        "result_cap": 25,
        "enrichment_batch_size": 5,
        "enrichment_timeout_seconds": 0.5,
        "discovery_timeout_seconds": 1.0,
        "max_queries": 1,
    }
    values.update(overrides)
    return PipelineConfig(**values)


def _pipeline(search, enrichment, *, catalog: EvidenceSignalCatalog | None = None, **config) -> LeadGenerationPipeline:
    return LeadGenerationPipeline(
        search if isinstance(search, list) else [search],
        enrichment,
        matcher=SignalMatcher(catalog),
        config=_config(**config),
        clock=lambda: RUN_AT,
    )


def _funding_only_catalog() -> EvidenceSignalCatalog:
    return EvidenceSignalCatalog.model_validate(
        {
            "patterns": [
                {
                    "id": "post_funding",
                    "name": "Post-funding scaling",
                    "signals": [
                        {"id": "recent_funding", "name": "Recent funding", "keywords": ["series a"], "tier": "HIGH"}
                    ],
                }
            ]
        }
    )


@pytest.mark.asyncio
async def test_end_to_end_single_admissible_candidate_scores_60(profile, job_manager, stub_metrics):
    search = FakeSearchProvider(
        [
            hit("https://acme.io/about", "Acme | Revenue tooling", "Acme raised a Series A to grow its sales org."),
            hit("https://www.linkedin.com/company/acme", "Acme | LinkedIn", "Acme raised a Series A."),
            hit("https://www.acme.io/pricing", "Acme Pricing", "Plans for every team."),
        ]
    )
    enrichment = FakeEnrichmentProvider(
        {
            "acme.io": EnrichmentScript(
                facts=CompanyFacts(name="Acme Inc", employee_count=120, industry="SaaS"),
                contacts=[Contact(name="Jane Doe", title="VP Sales")],
            )
        }
    )
    pipeline = _pipeline(search, enrichment, catalog=_funding_only_catalog())
    job = job_manager.submit(profile)

    await pipeline.run_job(job_manager, job.id)

    finished = job_manager.get_status(job.id)
    assert finished.status is JobStatus.COMPLETED
    assert finished.error is None
    leads = finished.result.leads
    assert len(leads) == 1
    lead = leads[0]
    assert lead.domain == "acme.io"
    assert lead.score == 60
    assert lead.rank == 1
    assert lead.website == "https://acme.io"
    assert lead.company.name == "Acme Inc"
    assert [signal.definition_id for signal in lead.signals] == ["recent_funding"]
    assert lead.signals[0].confidence == 75
    assert lead.match_reason == "1 signal detected"
    assert finished.result.meta.total_found == 1
    assert finished.result.meta.returned == 1
    assert enrichment.calls == [("Acme", "acme.io", 0.5, ("VP Sales",))]


@pytest.mark.asyncio
async def test_enrichment_timeouts_still_complete_with_signal_only_scores(profile, job_manager, stub_metrics):
    search = FakeSearchProvider(
        [hit(f"https://company{idx}.io", f"Company {idx}", "Growing SaaS team") for idx in range(3)]
    )
    enrichment = FakeEnrichmentProvider(default_delay=1.0)
    pipeline = _pipeline(search, enrichment, enrichment_timeout_seconds=0.05)
    job = job_manager.submit(profile)

    await pipeline.run_job(job_manager, job.id)

    finished = job_manager.get_status(job.id)
    assert finished.status is JobStatus.COMPLETED
    assert [lead.score for lead in finished.result.leads] == [50, 50, 50]
    assert all(lead.contacts == [] for lead in finished.result.leads)
    assert all(lead.company.description == "Growing SaaS team" for lead in finished.result.leads)
    assert len(stub_metrics.counted("enrichment.timeout")) == 3


@pytest.mark.asyncio
async def test_enrichment_provider_errors_degrade_single_candidates(profile, stub_metrics):
    search = FakeSearchProvider([hit("https://good.io", "Good"), hit("https://broken.io", "Broken")])
    enrichment = FakeEnrichmentProvider(
        {
            "good.io": EnrichmentScript(facts=CompanyFacts(employee_count=90, industry="SaaS")),
            "broken.io": EnrichmentScript(fail=True),
        }
    )

    result = await _pipeline(search, enrichment).generate(profile)

    assert [(lead.domain, lead.score) for lead in result.leads] == [("good.io", 55), ("broken.io", 50)]
    assert len(stub_metrics.counted("enrichment.error")) == 1


class _ExplodingEnrichment:
    name = "exploding"

    async def enrich(self, company_name, domain, budget, target_titles):
        raise ValueError(f"unexpected payload for {domain}")


class _ScriptedPerplexity:
    def __init__(self, *replies: str) -> None:
        self._replies = list(replies)

    async def complete(self, prompt: str, **_: object) -> str:
        return self._replies.pop(0)


class _CompleteFailsJobManager(JobManager):
    def complete(self, job_id, result):
        raise JobStoreError("Failed to update job.")


@pytest.mark.asyncio
async def test_unexpected_enrichment_errors_degrade_the_candidate(profile, job_manager, stub_metrics):
    search = FakeSearchProvider([hit("https://acme.io", "Acme")])
    job = job_manager.submit(profile)

    await _pipeline(search, _ExplodingEnrichment()).run_job(job_manager, job.id)

    finished = job_manager.get_status(job.id)
    assert finished.status is JobStatus.COMPLETED
    assert [(lead.domain, lead.score) for lead in finished.result.leads] == [("acme.io", 50)]
    assert stub_metrics.counted("enrichment.error")[0]["tags"] == {"code": "ValueError"}


@pytest.mark.asyncio
async def test_malformed_contact_replies_do_not_fail_the_job(profile, job_manager, stub_metrics):
    search = FakeSearchProvider([hit("https://acme.io", "Acme")])
    enrichment = PerplexityEnrichmentProvider(
        _ScriptedPerplexity(
            '{"name": "Acme Inc", "employeeCount": 120}',
            '[{"name": "Jane Doe", "title": "VP Sales", "email": 12345}, {"name": "Sam Roe", "title": "CEO"}]',
        )
    )
    job = job_manager.submit(profile)

    await _pipeline(search, enrichment, enrichment_timeout_seconds=5.0).run_job(job_manager, job.id)

    finished = job_manager.get_status(job.id)
    assert finished.status is JobStatus.COMPLETED
    assert len(finished.result.leads) == 1
    assert [contact.name for contact in finished.result.leads[0].contacts] == ["Sam Roe"]


@pytest.mark.asyncio
async def test_failed_completion_write_fails_the_job(profile, stub_metrics):
    manager = _CompleteFailsJobManager(InMemoryJobStore())
    search = FakeSearchProvider([hit("https://acme.io", "Acme")])
    job = manager.submit(profile)

    await JobRunner(manager, _pipeline(search, FakeEnrichmentProvider())).run(job.id)

    finished = manager.get_status(job.id)
    assert finished.status is JobStatus.FAILED
    assert finished.error.kind == "internal"
    assert finished.error.message == "JobStoreError: Failed to update job."
    assert stub_metrics.counted("jobs.terminal")[0]["tags"] == {"status": "internal_error"}


@pytest.mark.asyncio
async def test_size_band_keeps_slack_and_unknown_counts(stub_metrics):
    profile = TargetProfile(industries=["SaaS"], size_band=[100, 200])
    search = FakeSearchProvider(
        [
            hit("https://too-big.io", "Too Big"),
            hit("https://slightly-big.io", "Slightly Big"),
            hit("https://unknown.io", "Unknown"),
            hit("https://too-small.io", "Too Small"),
        ]
    )
    enrichment = FakeEnrichmentProvider(
        {
            "too-big.io": EnrichmentScript(facts=CompanyFacts(employee_count=320)),
            "slightly-big.io": EnrichmentScript(facts=CompanyFacts(employee_count=280)),
            "too-small.io": EnrichmentScript(facts=CompanyFacts(employee_count=20)),
        }
    )

    result = await _pipeline(search, enrichment).generate(profile)

    assert [lead.domain for lead in result.leads] == ["slightly-big.io", "unknown.io"]
    assert result.meta.total_found == 4


@pytest.mark.asyncio
async def test_stops_enriching_once_cap_is_reached(profile, stub_metrics):
    search = FakeSearchProvider([hit(f"https://company{idx}.io", f"Company {idx}") for idx in range(7)])
    enrichment = FakeEnrichmentProvider()

    result = await _pipeline(search, enrichment, result_cap=2, enrichment_batch_size=2).generate(profile)

    assert len(result.leads) == 2
    assert len(enrichment.calls) == 2
    assert [lead.rank for lead in result.leads] == [1, 2]


@pytest.mark.asyncio
async def test_output_is_capped_after_sorting(profile, stub_metrics):
    search = FakeSearchProvider([hit(f"https://company{idx}.io", f"Company {idx}") for idx in range(4)])
    enrichment = FakeEnrichmentProvider(
        {"company3.io": EnrichmentScript(contacts=[Contact(name="Sam", title="CEO")])}
    )

    result = await _pipeline(search, enrichment, result_cap=2, enrichment_batch_size=4).generate(profile)

    assert [lead.domain for lead in result.leads] == ["company3.io", "company0.io"]
    assert [lead.score for lead in result.leads] == [55, 50]


@pytest.mark.asyncio
async def test_ties_break_by_discovery_order(profile, stub_metrics):
    domains = ["zeta.io", "alpha.io", "mu.io"]
    search = FakeSearchProvider([hit(f"https://{domain}", domain) for domain in domains])

    result = await _pipeline(search, FakeEnrichmentProvider(), enrichment_batch_size=1).generate(profile)

    assert [lead.domain for lead in result.leads] == domains
    assert [lead.discovery_index for lead in result.leads] == [0, 1, 2]


@pytest.mark.asyncio
async def test_catalog_candidates_without_signals_are_dropped(profile, stub_metrics):
    search = FakeSearchProvider(
        [
            hit("https://quiet.io", "Quiet", "We make spreadsheets."),
            hit("https://loud.io", "Loud", "Loud raised a Series A and is expanding its sales team."),
        ]
    )

    result = await _pipeline(search, FakeEnrichmentProvider(), catalog=build_catalog()).generate(profile)

    assert [lead.domain for lead in result.leads] == ["loud.io"]
    lead = result.leads[0]
    assert {signal.category for signal in lead.signals} == {"funding", "hiring"}
    # 50 base + 10 second signal, x1.15 for two categories.
    assert lead.score == 69
    assert lead.match_reason == "2 signals detected"


@pytest.mark.asyncio
async def test_no_catalog_uses_profile_match(profile, stub_metrics):
    search = FakeSearchProvider([hit("https://acme.io", "Acme", "Anything at all")])

    result = await _pipeline(search, FakeEnrichmentProvider()).generate(profile)

    lead = result.leads[0]
    assert lead.score == 50
    assert lead.match_reason == "Matches profile"
    assert lead.signals[0].confidence == 40


@pytest.mark.asyncio
async def test_excluded_domains_never_reach_output(profile, stub_metrics):
    excluded = sorted(EXCLUDED_DOMAINS)[:5]
    search = FakeSearchProvider(
        [hit(f"https://www.{domain}/acme", "Acme") for domain in excluded] + [hit("https://acme.io", "Acme")]
    )

    result = await _pipeline(search, FakeEnrichmentProvider()).generate(profile)

    assert [lead.domain for lead in result.leads] == ["acme.io"]


@pytest.mark.asyncio
async def test_cancellation_between_batches(profile, stub_metrics):
    search = FakeSearchProvider([hit(f"https://company{idx}.io", f"Company {idx}") for idx in range(6)])
    enrichment = FakeEnrichmentProvider()
    checks = []

    def should_cancel() -> bool:
        checks.append(True)
        return len(checks) >= 3

    with pytest.raises(JobCancelledError):
        await _pipeline(search, enrichment, enrichment_batch_size=2).generate(profile, should_cancel=should_cancel)

    assert len(enrichment.calls) == 2


@pytest.mark.asyncio
async def test_job_cancelled_while_queued_fails_with_cancelled_kind(profile, job_manager, stub_metrics):
    search = FakeSearchProvider([hit("https://acme.io", "Acme")])
    job = job_manager.submit(profile)
    job_manager.request_cancel(job.id)

    await _pipeline(search, FakeEnrichmentProvider()).run_job(job_manager, job.id)

    finished = job_manager.get_status(job.id)
    assert finished.status is JobStatus.FAILED
    assert finished.error.kind == "cancelled"
    assert finished.error.code == "JOB_CANCELLED"
    assert finished.result is None
    assert search.queries == []


@pytest.mark.asyncio
async def test_all_queries_failing_fails_job_as_exhausted(profile, job_manager, stub_metrics):
    job = job_manager.submit(profile)

    await _pipeline(FakeSearchProvider(fail_all=True), FakeEnrichmentProvider()).run_job(job_manager, job.id)

    finished = job_manager.get_status(job.id)
    assert finished.status is JobStatus.FAILED
    assert finished.error.kind == "pipeline_exhausted"
    assert finished.result is None


@pytest.mark.asyncio
async def test_partial_discovery_failure_still_completes(profile, job_manager, stub_metrics):
    healthy = FakeSearchProvider([hit("https://acme.io", "Acme")], name="healthy")
    broken = FakeSearchProvider(fail_all=True, name="broken")
    job = job_manager.submit(profile)

    await _pipeline([broken, healthy], FakeEnrichmentProvider()).run_job(job_manager, job.id)

    finished = job_manager.get_status(job.id)
    assert finished.status is JobStatus.COMPLETED
    assert finished.result.meta.failed_queries == 1
    assert [lead.domain for lead in finished.result.leads] == ["acme.io"]


@pytest.mark.asyncio
async def test_zero_hits_completes_with_empty_result(profile, job_manager, stub_metrics):
    job = job_manager.submit(profile)

    await _pipeline(FakeSearchProvider([]), FakeEnrichmentProvider()).run_job(job_manager, job.id)

    finished = job_manager.get_status(job.id)
    assert finished.status is JobStatus.COMPLETED
    assert finished.result.leads == []
    assert finished.status_message == "Found 0 leads"


@pytest.mark.asyncio
async def test_unexpected_errors_fail_the_job_loudly(profile, job_manager, stub_metrics):
    search = FakeSearchProvider(error=KeyError("results"))
    job = job_manager.submit(profile)

    await _pipeline(search, FakeEnrichmentProvider()).run_job(job_manager, job.id)

    finished = job_manager.get_status(job.id)
    assert finished.status is JobStatus.FAILED
    assert finished.error.kind == "internal"
    assert "KeyError" in finished.error.message


@pytest.mark.asyncio
async def test_progress_messages_are_reported(profile, stub_metrics):
    search = FakeSearchProvider([hit(f"https://company{idx}.io", f"Company {idx}") for idx in range(3)])
    messages: list[str] = []

    await _pipeline(search, FakeEnrichmentProvider(), enrichment_batch_size=2).generate(
        profile, on_progress=messages.append
    )

    assert messages == [
        "Searching for companies",
        "Enriching companies 1-2 of 3",
        "Enriching companies 3-3 of 3",
        "Ranking leads",
    ]


@pytest.mark.asyncio
async def test_malformed_profile_is_a_programmer_error(stub_metrics):
    pipeline = _pipeline(FakeSearchProvider([]), FakeEnrichmentProvider())

    with pytest.raises(TypeError):
        await pipeline.generate({"industries": ["SaaS"]})


def test_pipeline_config_validates_tunables():
    with pytest.raises(ValueError):
        PipelineConfig(result_cap=0)
    with pytest.raises(ValueError):
        PipelineConfig(enrichment_timeout_seconds=0)

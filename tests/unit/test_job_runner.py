from unittest.mock import MagicMock

from aps_ingestion.database.models import JobRecord
from aps_ingestion.ingestion.models import ReportStatus
from aps_ingestion.report.models import QuarantineDecision
from aps_ingestion.worker.job_runner import JobRunner


def _make_runner(
    max_attempts: int = 3,
) -> tuple[JobRunner, MagicMock, MagicMock]:
    """Create a JobRunner with mocked dependencies."""
    mock_processor = MagicMock()
    mock_repo = MagicMock()
    settings = MagicMock(max_job_attempts=max_attempts)
    runner = JobRunner(mock_processor, mock_repo, settings)
    return runner, mock_processor, mock_repo


def _make_job(attempts: int = 0) -> JobRecord:
    return JobRecord(id=1, uploaded_file_id=10, status="processing", attempts=attempts)


def _make_report(
    status: ReportStatus = ReportStatus.PASSED,
    issues: tuple[str, ...] = (),
    quarantine: QuarantineDecision | None = None,
) -> MagicMock:
    return MagicMock(status=status, issues=issues, quarantine=quarantine or QuarantineDecision())


class TestSuccessfulProcessing:
    def test_calls_processor(self) -> None:
        runner, mock_processor, _repo = _make_runner()
        mock_processor.process.return_value = _make_report()

        runner.run(_make_job())

        mock_processor.process.assert_called_once_with(10, 1)

    def test_marks_job_done(self) -> None:
        runner, mock_processor, mock_repo = _make_runner()
        mock_processor.process.return_value = _make_report()

        runner.run(_make_job())

        mock_repo.mark_done.assert_called_once_with(1)

    def test_warning_report_is_done(self) -> None:
        runner, mock_processor, mock_repo = _make_runner()
        mock_processor.process.return_value = _make_report(ReportStatus.WARNING)

        runner.run(_make_job())

        mock_repo.mark_done.assert_called_once_with(1)


class TestFailedReport:
    def test_marks_failed_with_issue_summary(self) -> None:
        runner, mock_processor, mock_repo = _make_runner()
        mock_processor.process.return_value = _make_report(
            ReportStatus.FAILED, ("file is empty", "unrecognized file format")
        )

        runner.run(_make_job())

        mock_repo.mark_failed.assert_called_once_with(1, "file is empty; unrecognized file format")
        mock_repo.increment_attempts.assert_not_called()

    def test_summary_is_capped_at_five_issues(self) -> None:
        runner, mock_processor, mock_repo = _make_runner()
        issues = tuple(f"record {i}: missing required field 'cpf'" for i in range(8))
        mock_processor.process.return_value = _make_report(ReportStatus.FAILED, issues)

        runner.run(_make_job())

        summary = mock_repo.mark_failed.call_args.args[1]
        assert summary.count("record") == 5

    def test_failed_report_without_issues(self) -> None:
        runner, mock_processor, mock_repo = _make_runner()
        mock_processor.process.return_value = _make_report(ReportStatus.FAILED)

        runner.run(_make_job())

        mock_repo.mark_failed.assert_called_once_with(1, "validation failed")


class TestQuarantinedReport:
    def test_marks_quarantined(self) -> None:
        runner, mock_processor, mock_repo = _make_runner()
        mock_processor.process.return_value = _make_report(
            ReportStatus.WARNING,
            quarantine=QuarantineDecision(required=True, queued=True, reason="high security risk detected"),
        )

        runner.run(_make_job())

        mock_repo.mark_quarantined.assert_called_once_with(1, "high security risk detected")
        mock_repo.mark_done.assert_not_called()

    def test_overridden_quarantine_is_done(self) -> None:
        runner, mock_processor, mock_repo = _make_runner()
        mock_processor.process.return_value = _make_report(
            ReportStatus.WARNING,
            quarantine=QuarantineDecision(required=True, overridden=True, justification="ok"),
        )

        runner.run(_make_job())

        mock_repo.mark_done.assert_called_once_with(1)
        mock_repo.mark_quarantined.assert_not_called()


class TestFailureBelowMax:
    def test_increments_attempts(self) -> None:
        runner, mock_processor, mock_repo = _make_runner(max_attempts=3)
        mock_processor.process.side_effect = Exception("boom")

        runner.run(_make_job(attempts=0))

        mock_repo.increment_attempts.assert_called_once_with(1)
        mock_repo.mark_failed.assert_not_called()

    def test_does_not_mark_done(self) -> None:
        runner, mock_processor, mock_repo = _make_runner(max_attempts=3)
        mock_processor.process.side_effect = Exception("boom")

        runner.run(_make_job(attempts=1))

        mock_repo.mark_done.assert_not_called()


class TestFailureAtMax:
    def test_marks_failed(self) -> None:
        runner, mock_processor, mock_repo = _make_runner(max_attempts=3)
        mock_processor.process.side_effect = Exception("boom")

        runner.run(_make_job(attempts=2))

        mock_repo.mark_failed.assert_called_once_with(1, "boom")
        mock_repo.increment_attempts.assert_not_called()

    def test_marks_failed_when_over_max(self) -> None:
        runner, mock_processor, mock_repo = _make_runner(max_attempts=3)
        mock_processor.process.side_effect = Exception("boom")

        runner.run(_make_job(attempts=5))

        mock_repo.mark_failed.assert_called_once_with(1, "boom")

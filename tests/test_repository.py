from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import allure
import pytest
from sqlalchemy.exc import IntegrityError

from docbatch.tasks.models import (
    DocumentTaskStatus,
    OutputFileEntry,
    PlaceholderMapping,
    TaskProgress,
)
from docbatch.tasks.repository import DocumentTaskRepository

pytestmark = [
    allure.epic("Document Tasks"),
    allure.feature("Task Queue Reliability"),
]

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def _claim(repository: DocumentTaskRepository, *, worker_id: str = "worker-a", now=NOW):
    stale_before = now - timedelta(minutes=120)
    candidates = repository.find_claim_candidates(stale_before=stale_before, limit=10)
    assert candidates
    return repository.claim_task(
        candidate=candidates[0],
        worker_id=worker_id,
        stale_before=stale_before,
        now=now,
    )


def test_alembic_schema_is_initialized_to_head(repository: DocumentTaskRepository) -> None:
    with repository.engine.connect() as connection:
        version = connection.exec_driver_sql("SELECT version_num FROM alembic_version").scalar()
        tables = {
            row[0]
            for row in connection.exec_driver_sql(
                "SELECT name FROM sqlite_master WHERE type = 'table'",
            )
        }

    assert version == "20261019_0001"
    assert {
        "projects",
        "project_members",
        "project_field_mappings",
        "document_templates",
        "document_template_mappings",
        "document_tasks",
        "document_task_events",
    } <= tables


def test_create_task_starts_pending_with_empty_progress(repository, make_task) -> None:
    task_id = make_task((3, 1, 2), output_folder_id="folder-1")

    task = repository.get_task(task_id=task_id)

    assert task is not None
    assert task.status == DocumentTaskStatus.PENDING
    assert task.participant_ids == (3, 1, 2)
    assert task.progress_total == 3
    assert task.progress_done == 0
    assert task.output_files == ()
    assert task.locked_at is None
    assert task.locked_by is None
    assert task.output_folder_id == "folder-1"
    assert task.to_dict()["participantIds"] == [3, 1, 2]


def test_list_tasks_returns_newest_first_with_limit(repository, make_task, project_id) -> None:
    ids = [make_task((1,), now=NOW + timedelta(minutes=offset)) for offset in range(3)]

    listed = repository.list_tasks(project_id=project_id, limit=2)

    assert [task.task_id for task in listed] == [ids[2], ids[1]]


def test_claim_sets_lock_and_records_event(repository, make_task) -> None:
    task_id = make_task()

    claim = _claim(repository)

    assert claim is not None
    assert claim.task_id == task_id
    assert claim.reclaimed is False
    task = repository.get_task(task_id=task_id)
    assert task is not None
    assert task.status == DocumentTaskStatus.PROCESSING
    assert task.locked_by == "worker-a"
    assert task.locked_at == NOW
    details = repository.get_task_details(task_id=task_id)
    assert details is not None
    assert [event.event_type for event in details.events] == ["created", "claimed"]


def test_claim_with_outdated_candidate_is_skipped(repository, make_task) -> None:
    make_task()
    stale_before = NOW - timedelta(minutes=120)
    candidate = repository.find_claim_candidates(stale_before=stale_before, limit=10)[0]

    first = repository.claim_task(
        candidate=candidate,
        worker_id="worker-a",
        stale_before=stale_before,
        now=NOW,
    )
    second = repository.claim_task(
        candidate=candidate,
        worker_id="worker-b",
        stale_before=stale_before,
        now=NOW,
    )

    assert first is not None
    assert second is None
    task = repository.get_task(task_id=candidate.task_id)
    assert task is not None
    assert task.locked_by == "worker-a"


def test_fresh_lock_is_not_a_candidate(repository, make_task) -> None:
    make_task()
    _claim(repository, now=NOW)

    candidates = repository.find_claim_candidates(
        stale_before=NOW + timedelta(minutes=30) - timedelta(minutes=120),
        limit=10,
    )

    assert candidates == []


def test_stale_lock_is_reclaimed(repository, make_task) -> None:
    task_id = make_task()
    _claim(repository, worker_id="worker-a", now=NOW)

    later = NOW + timedelta(minutes=121)
    claim = _claim(repository, worker_id="worker-b", now=later)

    assert claim is not None
    assert claim.reclaimed is True
    task = repository.get_task(task_id=task_id)
    assert task is not None
    assert task.locked_by == "worker-b"
    assert task.locked_at == later
    details = repository.get_task_details(task_id=task_id)
    assert details is not None
    assert details.events[-1].event_type == "reclaimed"
    assert details.events[-1].status_from == DocumentTaskStatus.PROCESSING


def test_concurrent_claims_have_exactly_one_winner(db_path: Path, repository, make_task) -> None:
    task_id = make_task()
    stale_before = NOW - timedelta(minutes=120)
    candidate = repository.find_claim_candidates(stale_before=stale_before, limit=10)[0]
    barrier = threading.Barrier(4)
    results: list[object] = []
    lock = threading.Lock()

    def _worker(worker_id: str) -> None:
        local = DocumentTaskRepository(db_path)
        try:
            barrier.wait(timeout=5)
            claim = local.claim_task(
                candidate=candidate,
                worker_id=worker_id,
                stale_before=stale_before,
                now=NOW,
            )
            with lock:
                results.append(claim)
        finally:
            local.close()

    threads = [threading.Thread(target=_worker, args=(f"worker-{index}",)) for index in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    winners = [claim for claim in results if claim is not None]
    assert len(results) == 4
    assert len(winners) == 1
    task = repository.get_task(task_id=task_id)
    assert task is not None
    assert task.locked_by == winners[0].worker_id  # type: ignore[attr-defined]


def test_progress_write_is_rejected_after_takeover(repository, make_task) -> None:
    task_id = make_task()
    old_claim = _claim(repository, worker_id="worker-a", now=NOW)
    new_claim = _claim(repository, worker_id="worker-b", now=NOW + timedelta(minutes=121))
    assert old_claim is not None
    assert new_claim is not None
    progress = TaskProgress().advance(
        OutputFileEntry(participant_id=1, final_id="final-1", name="a.pdf"),
    )

    assert repository.save_progress(claim=old_claim, progress=progress) is False
    assert repository.finish_task(claim=old_claim, progress=progress) is None
    assert repository.save_progress(claim=new_claim, progress=progress) is True

    task = repository.get_task(task_id=task_id)
    assert task is not None
    assert task.progress_done == 1
    assert task.locked_by == "worker-b"


def test_finish_task_sets_terminal_status_and_clears_lock(repository, make_task) -> None:
    task_id = make_task((1, 2))
    claim = _claim(repository)
    assert claim is not None
    progress = TaskProgress().advance(
        OutputFileEntry(participant_id=1, final_id="final-1", name="a.pdf", intermediate_id="d1"),
    )
    progress = progress.advance(
        OutputFileEntry(participant_id=2, final_id="", name="b.pdf", error="boom"),
    )

    status = repository.finish_task(claim=claim, progress=progress)

    assert status == DocumentTaskStatus.FAILED
    task = repository.get_task(task_id=task_id)
    assert task is not None
    assert task.status == DocumentTaskStatus.FAILED
    assert task.progress_done == 2
    assert task.locked_at is None
    assert task.locked_by is None
    assert task.error == "Document generation failed for 1 participant(s)"
    assert [entry.to_dict() for entry in task.output_files] == [
        {"participantId": 1, "intermediateId": "d1", "finalId": "final-1", "name": "a.pdf"},
        {"participantId": 2, "finalId": "", "name": "b.pdf", "error": "boom"},
    ]


def test_terminal_task_is_never_a_candidate(repository, make_task) -> None:
    make_task((1,))
    claim = _claim(repository)
    assert claim is not None
    repository.finish_task(
        claim=claim,
        progress=TaskProgress().advance(
            OutputFileEntry(participant_id=1, final_id="final-1", name="a.pdf"),
        ),
    )

    far_future = NOW + timedelta(days=30)
    assert repository.find_claim_candidates(stale_before=far_future, limit=10) == []


def test_progress_check_constraint_rejects_overflow(repository, make_task) -> None:
    make_task((1,))
    claim = _claim(repository)
    assert claim is not None
    progress = TaskProgress(
        output_files=(
            OutputFileEntry(participant_id=1, final_id="f1", name="a.pdf"),
            OutputFileEntry(participant_id=2, final_id="f2", name="b.pdf"),
        ),
    )

    with pytest.raises(IntegrityError):
        repository.save_progress(claim=claim, progress=progress)


def test_template_mappings_are_replaced_atomically(repository, template) -> None:
    repository.replace_template_mappings(
        template_id=template.template_id,
        mappings=[PlaceholderMapping(placeholder="A", participant_key="a")],
    )
    stored = repository.replace_template_mappings(
        template_id=template.template_id,
        mappings=[
            PlaceholderMapping(placeholder="IMIE", participant_key="first_name"),
            PlaceholderMapping(placeholder="NAZWISKO", participant_key="last_name"),
        ],
    )

    assert [(row.placeholder, row.participant_key) for row in stored] == [
        ("IMIE", "first_name"),
        ("NAZWISKO", "last_name"),
    ]
    assert repository.resolve_mappings(template.template_id)[0].placeholder == "IMIE"

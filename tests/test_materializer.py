from __future__ import annotations

from taskrelay.core.errors import WritebackFailed
from taskrelay.core.orchestration.materializer import ResponseMaterializer


def test_callout_is_written_first_and_children_batched_under_it(workspace) -> None:
    text = "\n\n".join(f"Paragraph {index}" for index in range(150))

    report = ResponseMaterializer(workspace, batch_size=100).materialize(
        text, ["task-1"], marker="Agent Response", icon="🤖"
    )

    assert report.ok is True
    assert report.written == ["task-1"]
    assert report.block_count == 150
    first_target, first_batch = workspace.appends[0]
    assert first_target == "task-1"
    assert [block["type"] for block in first_batch] == ["callout"]
    assert first_batch[0]["callout"]["rich_text"][0]["text"]["content"] == "Agent Response"
    assert [target for target, _ in workspace.appends[1:]] == ["blk-1-0", "blk-1-0"]
    assert [len(batch) for _, batch in workspace.appends[1:]] == [100, 50]


def test_failed_destination_is_reported_without_stopping_others(workspace) -> None:
    workspace.failing_appends = {"source-1"}

    report = ResponseMaterializer(workspace).materialize("Done.", ["task-1", "source-1"])

    assert report.written == ["task-1"]
    assert report.ok is False
    assert len(report.failures) == 1
    assert isinstance(report.failures[0], WritebackFailed)
    assert report.failures[0].destination_id == "source-1"


def test_conversion_error_falls_back_to_paragraph_splitter(workspace) -> None:
    def broken(text: str, limit: int) -> list[dict]:
        raise RuntimeError("parser exploded")

    materializer = ResponseMaterializer(workspace, converter=broken)

    blocks = materializer.convert("alpha\n\nbeta")

    assert [block["paragraph"]["rich_text"][0]["text"]["content"] for block in blocks] == ["alpha", "beta"]


def test_empty_conversion_falls_back_to_paragraph_splitter(workspace) -> None:
    materializer = ResponseMaterializer(workspace, converter=lambda text, limit: [])

    assert len(materializer.convert("one\n\ntwo\n\nthree")) == 3


def test_image_writeback_attaches_external_image(workspace) -> None:
    report = ResponseMaterializer(workspace).materialize_image("https://cdn.example/out.png", "a red bicycle", ["task-1"])

    assert report.ok is True
    callout = workspace.appends[0][1][0]
    assert callout["callout"]["rich_text"][0]["text"]["content"] == "Generated: a red bicycle"
    image = workspace.appends[1][1][0]
    assert image["image"]["external"]["url"] == "https://cdn.example/out.png"

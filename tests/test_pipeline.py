"""
Tests for loading, persistence and batch orchestration.

Run with: pytest tests/test_pipeline.py -v
"""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from etl_courses import main
from etl_domain import (
    ConfigError,
    PersistError,
    SourceLoadError,
    SourceShapeError,
    StructuralInvariantError,
    TransformConfig,
)
from etl_infrastructure import JSONRepository, JSONSourceLoader, load_config, validate_source_shape
from etl_pipeline import ETLPipeline


FIXED_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_pipeline(output_dir: Path, **config) -> ETLPipeline:
    return ETLPipeline(
        loader=JSONSourceLoader(),
        repository=JSONRepository(output_dir),
        config=TransformConfig(**config),
        clock=lambda: FIXED_NOW,
    )


def write_json(path: Path, data) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestSourceShape:
    """Tests for the up-front source checks."""

    def test_valid(self, source):
        validate_source_shape(source)

    @pytest.mark.parametrize("key", ["course", "units", "activities", "competencies"])
    def test_missing_key(self, source, key):
        del source[key]
        with pytest.raises(SourceShapeError, match=key):
            validate_source_shape(source)

    def test_empty_lists_allowed(self, source):
        source["units"] = []
        source["competencies"] = []
        validate_source_shape(source)

    def test_activities_not_list(self, source):
        source["activities"] = {"activity": {"id": 1}}
        with pytest.raises(SourceShapeError, match="array"):
            validate_source_shape(source)

    def test_activity_without_id(self, source):
        source["activities"].append({"activity": {"title": "No id"}})
        with pytest.raises(SourceShapeError, match="index 7"):
            validate_source_shape(source)

    def test_not_an_object(self):
        with pytest.raises(SourceShapeError):
            validate_source_shape([1, 2, 3])


class TestInfrastructure:
    """Tests for the JSON loader, repository and config."""

    def test_loader_rejects_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SourceLoadError, match="Invalid JSON format"):
            JSONSourceLoader().load(path)

    def test_loader_rejects_large_files(self, tmp_path, source):
        path = write_json(tmp_path / "big.json", source)
        with pytest.raises(SourceLoadError, match="exceeds"):
            JSONSourceLoader(max_file_size=10).load(path)

    def test_loader_missing_file(self, tmp_path):
        with pytest.raises(SourceLoadError):
            JSONSourceLoader().load(tmp_path / "missing.json")

    def test_repository_round_trip(self, tmp_path):
        repository = JSONRepository(tmp_path / "out")
        repository.save({"course": {"name": "Ética"}}, "a_output.json")
        assert repository.load("a_output.json") == {"course": {"name": "Ética"}}
        assert [p.name for p in repository.list_outputs()] == ["a_output.json"]

    def test_repository_failed_write_leaves_nothing(self, tmp_path):
        repository = JSONRepository(tmp_path)
        with pytest.raises(PersistError):
            repository.save({"bad": object()}, "x_output.json")
        assert list(tmp_path.iterdir()) == []

    def test_config_defaults_when_missing(self, tmp_path):
        assert load_config(tmp_path / "config.json") == TransformConfig()
        assert load_config(None) == TransformConfig()

    def test_config_from_file(self, tmp_path, caplog):
        path = write_json(tmp_path / "config.json", {
            "concurrent_limit": 5,
            "generate_analytics": True,
            "colour": "blue",
            "activity_policy": {"require_text": False},
        })
        with caplog.at_level("WARNING"):
            config = load_config(path)
        assert config.concurrent_limit == 5
        assert config.generate_analytics is True
        assert config.activity_policy.require_text is False
        assert config.activity_policy.enforce_type_order is True
        assert "colour" in caplog.text

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"activity_policy": "all"}'])
    def test_config_with_wrong_shape(self, tmp_path, content):
        path = tmp_path / "config.json"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError, match="config|activity_policy"):
            load_config(path)

    def test_repository_delete(self, tmp_path):
        repository = JSONRepository(tmp_path)
        repository.save({"a": 1}, "a_output.json")
        repository.delete("a_output.json")
        repository.delete("never_written.json")
        assert list(tmp_path.iterdir()) == []

    def test_output_name(self):
        config = TransformConfig()
        assert config.output_name("course.json") == "course_output.json"
        assert config.output_name("course") == "course_output.json"


class TestTransformJob:
    """Tests for a single document's job."""

    def test_transform_persists_document(self, tmp_path, source):
        pipeline = make_pipeline(tmp_path)
        document, warnings = pipeline.transform(source, "course_output.json")
        assert pipeline.repository.load("course_output.json") == document
        assert any("u02a2" in w for w in warnings)

    def test_unmapped_assignment_reported_once(self, tmp_path, source):
        _, warnings = make_pipeline(tmp_path).transform(source, "course_output.json")
        unmapped = [w for w in warnings if "competency mappings" in w]
        assert unmapped == ["Found assignments without competency mappings: u02a2"]

    def test_same_source_gives_identical_bytes(self, tmp_path, build_source):
        pipeline = make_pipeline(tmp_path)
        pipeline.transform(build_source(), "first_output.json")
        pipeline.transform(build_source(), "second_output.json")
        first = (tmp_path / "first_output.json").read_bytes()
        assert first == (tmp_path / "second_output.json").read_bytes()

    def test_shape_error_persists_nothing(self, tmp_path, source):
        del source["units"]
        pipeline = make_pipeline(tmp_path)
        with pytest.raises(SourceShapeError):
            pipeline.transform(source, "course_output.json")
        assert not (tmp_path / "course_output.json").exists()

    def test_invariant_error_persists_nothing(self, tmp_path, source, monkeypatch):
        def broken(data):
            raise StructuralInvariantError("Week numbers are not sequential")

        pipeline = make_pipeline(tmp_path)
        monkeypatch.setattr(pipeline.validator, "validate", broken)
        with pytest.raises(StructuralInvariantError):
            pipeline.transform(source, "course_output.json")
        assert not (tmp_path / "course_output.json").exists()

    def test_process_document_failure_is_recorded(self, tmp_path):
        outcome = make_pipeline(tmp_path).process_document("broken.json", {"course": {}})
        assert outcome.filename == "broken.json"
        assert "missing required keys" in outcome.error
        assert outcome.timestamp == FIXED_NOW.isoformat()

    def test_analytics_side_file(self, tmp_path, source):
        outcome = make_pipeline(tmp_path, generate_analytics=True).process_document("course.json", source)
        assert outcome.analytics["overview"]["totalActivities"] == 6
        saved = json.loads((tmp_path / "course_analytics.json").read_text(encoding="utf-8"))
        assert saved["workloadAnalysis"]["heaviestWeek"]["weekNumber"] == 1

    def test_failed_analytics_removes_document(self, tmp_path, source, monkeypatch):
        pipeline = make_pipeline(tmp_path, generate_analytics=True)

        def broken(filename, data):
            raise OSError("disk full")

        monkeypatch.setattr(pipeline.repository, "save_report", broken)
        outcome = pipeline.process_document("course.json", source)
        assert outcome.error == "disk full"
        assert not (tmp_path / "course_output.json").exists()
        assert not (tmp_path / "course_analytics.json").exists()


class TestBatch:
    """Tests for grouped batch processing."""

    def test_directory_batch(self, tmp_path, build_source):
        inbox = tmp_path / "in"
        inbox.mkdir()
        for name in ["a", "b", "c", "d"]:
            write_json(inbox / f"{name}.json", build_source())
        write_json(inbox / "e.json", {"course": {"name": "Broken"}})
        (inbox / "f.json").write_text("{oops", encoding="utf-8")

        pipeline = make_pipeline(tmp_path / "out", concurrent_limit=2)
        result = pipeline.process_directory(inbox)

        assert result.total_processed == 6
        assert sorted(s.filename for s in result.successful) == ["a.json", "b.json", "c.json", "d.json"]
        assert sorted(f.filename for f in result.failed) == ["e.json", "f.json"]
        assert (tmp_path / "out" / "a_output.json").exists()
        assert not (tmp_path / "out" / "e_output.json").exists()

        report = json.loads((tmp_path / "out" / "batch_report.json").read_text(encoding="utf-8"))
        assert report["totalProcessed"] == 6
        assert len(report["failed"]) == 2
        assert report["startTime"] == FIXED_NOW.isoformat()

    def test_batch_skips_previous_outputs(self, tmp_path, source):
        write_json(tmp_path / "course.json", source)
        pipeline = make_pipeline(tmp_path)
        pipeline.process_directory(tmp_path)
        result = pipeline.process_directory(tmp_path)
        assert [s.filename for s in result.successful] == ["course.json"]

    def test_documents_batch_isolates_failures(self, tmp_path, build_source):
        documents = {"ok.json": build_source(), "bad.json": {"units": []}, "ok2.json": build_source()}
        result = make_pipeline(tmp_path, concurrent_limit=3).process_documents(documents)
        assert [s.filename for s in result.successful] == ["ok.json", "ok2.json"]
        assert [f.filename for f in result.failed] == ["bad.json"]
        assert result.total_processed == 3

    def test_batch_to_dict(self, tmp_path, source):
        pipeline = make_pipeline(tmp_path)
        result = pipeline.process_documents({"course.json": source})
        data = ETLPipeline.batch_to_dict(result)
        assert data["successful"][0]["outputPath"].endswith("course_output.json")
        assert data["successful"][0]["metadata"]["totalWeeks"] == 2
        assert data["failed"] == []

    def test_empty_directory(self, tmp_path):
        result = make_pipeline(tmp_path / "out").process_directory(tmp_path)
        assert result.total_processed == 0
        assert not (tmp_path / "out" / "batch_report.json").exists()


class TestCommandLine:
    """Tests for the etl_courses entry point."""

    def test_single_file(self, tmp_path, source, capsys):
        path = write_json(tmp_path / "course.json", source)
        code = main([str(path), str(tmp_path / "out"), "--config", str(tmp_path / "none.json"), "--analytics"])
        assert code == 0
        assert (tmp_path / "out" / "course_output.json").exists()
        assert (tmp_path / "out" / "course_analytics.json").exists()
        assert "Saved" in capsys.readouterr().out

    def test_directory_with_failure(self, tmp_path, source, capsys):
        inbox = tmp_path / "in"
        inbox.mkdir()
        write_json(inbox / "good.json", source)
        write_json(inbox / "bad.json", {"course": {}})
        code = main([str(inbox), str(tmp_path / "out"), "--config", str(tmp_path / "none.json")])
        assert code == 1
        assert "1 courses successfully, 1 failed" in capsys.readouterr().out

    def test_bad_config_is_a_usage_error(self, tmp_path, source, capsys):
        path = write_json(tmp_path / "course.json", source)
        config = tmp_path / "config.json"
        config.write_text("{broken", encoding="utf-8")
        with pytest.raises(SystemExit) as excinfo:
            main([str(path), str(tmp_path / "out"), "--config", str(config)])
        assert excinfo.value.code == 2
        assert "Invalid JSON in config file" in capsys.readouterr().err
        assert not (tmp_path / "out").exists()

import json

from dirop.observers.dispatcher import BoundBus, EventBus
from dirop.observers.events import ReplicaStarted, new_ctx
from dirop.observers.jsonfile import JsonFileObserver

from conftest import Capture


class Broken:
    def notify(self, event):
        raise RuntimeError("observer down")


def test_failing_observer_does_not_stop_others():
    capture = Capture()
    bus = BoundBus(EventBus([Broken(), capture]), new_ctx("ns", "directory", run_id="r1"))

    bus.emit(ReplicaStarted, identity="v1", instance="directory-v1")

    [event] = capture.events
    assert event.run_id == "r1"
    assert (event.namespace, event.deployment, event.identity) == ("ns", "directory", "v1")


def test_jsonfile_observer_appends_one_line_per_event(tmp_path):
    path = tmp_path / "events" / "r1.jsonl"
    bus = BoundBus(EventBus([JsonFileObserver(path)]), new_ctx("ns", "directory", run_id="r1"))

    bus.emit(ReplicaStarted, identity="v1", instance="directory-v1")
    bus.emit(ReplicaStarted, identity="v2", instance="directory-v2")

    lines = [json.loads(line) for line in path.read_text().splitlines()]
    assert [line["identity"] for line in lines] == ["v1", "v2"]
    assert lines[0]["type"] == "ReplicaStarted"
    assert lines[0]["ts"].endswith("Z")

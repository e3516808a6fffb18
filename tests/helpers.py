def assert_history_consistent(doc):
    assert len(doc["status_history"]) >= 1
    assert doc["status_history"][-1]["status"] == doc["status"]


def statuses(doc):
    return [entry["status"] for entry in doc["status_history"]]

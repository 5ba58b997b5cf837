from conftest import ROSTER, auth, correct_for, make_paper, wrong_for


def _create(client, headers, **extra):
    body = {"classroomId": "aula-1", "roster": ROSTER, "paper": make_paper(10), **extra}
    r = client.post("/sessions", json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()

def _start(client, headers, session_id, minutes=30):
    r = client.post(f"/sessions/{session_id}/start", json={"durationMinutes": minutes}, headers=headers)
    assert r.status_code == 200, r.text
    return r.json()


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"

def test_requires_token(client):
    assert client.get("/sessions").status_code == 401
    assert client.get("/sessions", headers={"Authorization": "Bearer basura"}).status_code == 401

def test_students_cannot_manage_sessions(client):
    r = client.post("/sessions", json={"classroomId": "a", "paper": make_paper(1)}, headers=auth("ana"))
    assert r.status_code == 403

def test_full_flow(client, clock, teacher_headers):
    s = _create(client, teacher_headers)
    assert s["status"] == "draft"
    assert s["questionsCount"] == 10
    s = _start(client, teacher_headers, s["id"])
    assert s["status"] == "active"

    ana = auth("ana")
    active = client.get("/student/tests/active", headers=ana).json()
    assert [t["sessionId"] for t in active] == [s["id"]]
    assert active[0]["canStart"] is True

    begin = client.post(f"/student/tests/{s['id']}/begin", headers=ana).json()
    assert begin["created"] is True
    assert begin["timeRemainingSeconds"] == 30 * 60
    assert all("correctIndex" not in q for q in begin["questions"])
    attempt_id = begin["attemptId"]

    for i in range(1, 7):
        r = client.put(f"/student/attempts/{attempt_id}/answers",
                       json={"questionId": f"q{i}", "selection": correct_for(i)}, headers=ana)
        assert r.status_code == 200, r.text
    clock.advance(minutes=12)
    r = client.post(f"/student/attempts/{attempt_id}/submit",
                    json={"answers": {"q7": wrong_for(7), "q8": wrong_for(8)}}, headers=ana)
    assert r.status_code == 200, r.text
    out = r.json()
    assert out["created"] is True
    assert out["status"] == "submitted"
    card = out["scoreCard"]
    assert (card["score"], card["accuracy"], card["skipped"]) == (60, 75.0, 2)

    retry = client.post(f"/student/attempts/{attempt_id}/submit", json={}, headers=ana).json()
    assert retry["created"] is False
    assert retry["scoreCard"] == card

    status = client.get(f"/sessions/{s['id']}/status", headers=teacher_headers).json()
    assert status["submittedCount"] == 1
    assert status["notStartedCount"] == 2
    assert status["timeRemainingSeconds"] == 18 * 60
    assert status["recentSubmissions"][0]["score"] == 60

    detail = client.get(f"/student/attempts/{attempt_id}", headers=ana).json()
    q7 = next(q for q in detail["questions"] if q["questionId"] == "q7")
    assert q7["outcome"] == "wrong"
    assert q7["correctIndex"] == correct_for(7)
    assert client.get(f"/student/attempts/{attempt_id}", headers=auth("beto")).status_code == 404

    stop = client.post(f"/sessions/{s['id']}/stop", headers=teacher_headers).json()
    assert stop["session"]["status"] == "completed"
    results = client.get(f"/sessions/{s['id']}/results", headers=teacher_headers).json()
    assert results["stats"]["averageScore"] == 60
    assert results["stats"]["highestScore"] == 60

def test_late_answer_and_submit(client, clock, teacher_headers):
    s = _start(client, teacher_headers, _create(client, teacher_headers)["id"])
    ana = auth("ana")
    attempt_id = client.post(f"/student/tests/{s['id']}/begin", headers=ana).json()["attemptId"]
    client.put(f"/student/attempts/{attempt_id}/answers", json={"questionId": "q1", "selection": 1}, headers=ana)
    clock.advance(minutes=31)

    r = client.put(f"/student/attempts/{attempt_id}/answers", json={"questionId": "q2", "selection": 2}, headers=ana)
    assert r.status_code == 410
    assert r.json()["code"] == "attempt_expired"

    r = client.post(f"/student/attempts/{attempt_id}/submit", json={"answers": {"q2": 2}}, headers=ana)
    assert r.status_code == 200
    assert r.json()["status"] == "timed_out"
    assert r.json()["scoreCard"]["correctAnswers"] == 1

    r = client.post(f"/student/tests/{s['id']}/begin", headers=auth("beto"))
    assert r.status_code == 409
    assert r.json()["code"] == "session_not_active"

def test_start_twice_is_conflict(client, teacher_headers):
    s = _create(client, teacher_headers)
    _start(client, teacher_headers, s["id"])
    r = client.post(f"/sessions/{s['id']}/start", json={"durationMinutes": 30}, headers=teacher_headers)
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_state"

def test_other_teacher_cannot_touch_session(client, teacher_headers):
    s = _create(client, teacher_headers)
    r = client.post(f"/sessions/{s['id']}/start", json={"durationMinutes": 30}, headers=auth("t2", "teacher"))
    assert r.status_code == 403
    assert client.get(f"/sessions/{s['id']}", headers=auth("boss", "admin")).status_code == 200

def test_create_from_paper_bank(client, teacher_headers, paper_bank):
    r = client.post("/sessions", json={"classroomId": "aula-1", "paperId": "bank-7"}, headers=teacher_headers)
    assert r.status_code == 201, r.text
    assert r.json()["questionsCount"] == 5
    assert paper_bank.calls == ["bank-7"]

    r = client.post("/sessions", json={"classroomId": "aula-1", "paperId": "nope"}, headers=teacher_headers)
    assert r.status_code == 404

def test_create_needs_exactly_one_paper_source(client, teacher_headers):
    r = client.post("/sessions", json={"classroomId": "a"}, headers=teacher_headers)
    assert r.status_code == 422
    r = client.post("/sessions", json={"classroomId": "a", "paper": make_paper(1), "paperId": "x"},
                    headers=teacher_headers)
    assert r.status_code == 422

def test_list_reassign_cancel_delete(client, teacher_headers):
    ids = [_create(client, teacher_headers, title=f"P{i}")["id"] for i in range(3)]
    page = client.get("/sessions", params={"limit": 2}, headers=teacher_headers).json()
    assert page["total"] == 3
    assert len(page["items"]) == 2
    assert page["pages"] == 2

    r = client.patch(f"/sessions/{ids[0]}/reassign", json={"classroomId": "aula-9", "roster": ["zoe"]},
                     headers=teacher_headers)
    assert r.json()["classroomId"] == "aula-9"
    assert r.json()["totalStudents"] == 1

    assert client.post(f"/sessions/{ids[1]}/cancel", headers=teacher_headers).json()["status"] == "cancelled"
    assert client.delete(f"/sessions/{ids[1]}", headers=teacher_headers).status_code == 204
    assert client.get(f"/sessions/{ids[1]}", headers=teacher_headers).status_code == 404

def test_analytics_endpoints(client, clock, teacher_headers, admin_headers):
    s = _start(client, teacher_headers, _create(client, teacher_headers)["id"])
    ana = auth("ana")
    attempt_id = client.post(f"/student/tests/{s['id']}/begin", headers=ana).json()["attemptId"]
    client.post(f"/student/attempts/{attempt_id}/submit", json={"answers": {"q1": correct_for(1)}}, headers=ana)
    client.post(f"/sessions/{s['id']}/stop", headers=teacher_headers)

    snap = client.get("/analytics/teacher", headers=teacher_headers).json()
    assert snap["scope"] == "teacher"
    assert snap["classTrend"][0]["avgScore"] == 10
    assert client.get("/analytics/admin", headers=teacher_headers).status_code == 403
    tenant = client.get("/analytics/admin", headers=admin_headers).json()
    assert tenant["teacherOverview"][0]["teacherId"] == "teacher-1"
    mine = client.get("/student/analytics", headers=ana).json()
    assert mine["testsTaken"] == 1

    overview = client.get(f"/sessions/{s['id']}/overview", headers=teacher_headers).json()
    assert overview["students"][0]["studentId"] == "ana"

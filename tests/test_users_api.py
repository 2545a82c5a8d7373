"""User routes: create/replace/delete drive the assignment relationship."""
import json

MISSING_ID = "64b7f0c2a1b2c3d4e5f60718"


def _user(client, user_id):
    return client.get(f"/users/{user_id}").json()["data"]


def _task(client, task_id):
    return client.get(f"/tasks/{task_id}").json()["data"]


def test_create_user(client):
    res = client.post("/users", json={"name": "Ada", "email": "ada@example.com"})

    assert res.status_code == 201
    body = res.json()
    assert body["message"] == "User created"
    assert body["data"]["pendingTasks"] == []
    assert body["data"]["email"] == "ada@example.com"


def test_create_user_requires_name_and_email(client):
    assert client.post("/users", json={"name": "Ada"}).status_code == 400
    assert client.post("/users", json={"email": "ada@example.com"}).status_code == 400
    assert client.post("/users", json={"name": "", "email": "ada@example.com"}).status_code == 400


def test_duplicate_email_is_rejected(client, make_user):
    make_user("Ada", email="same@example.com")

    res = client.post("/users", json={"name": "Other", "email": "same@example.com"})

    assert res.status_code == 400
    assert res.json()["data"]["code"] == "DUPLICATE_KEY"


def test_create_user_with_pending_tasks(client, make_user, make_task):
    open_task = make_task(name="open")
    done_task = make_task(name="done", completed=True)

    user = make_user("Ada", pending=[open_task["_id"], done_task["_id"], MISSING_ID])

    assert user["pendingTasks"] == [open_task["_id"]]
    assert _task(client, open_task["_id"])["assignedUserName"] == "Ada"
    assert _task(client, done_task["_id"])["assignedUser"] == user["_id"]


def test_create_user_takes_task_from_previous_owner(client, make_user, make_task):
    bob = make_user("Bob")
    task = make_task(assigned_user=bob["_id"])

    ada = make_user("Ada", pending=[task["_id"]])

    assert ada["pendingTasks"] == [task["_id"]]
    assert _user(client, bob["_id"])["pendingTasks"] == []


def test_replace_pending_tasks_reassigns(client, make_user, make_task):
    user = make_user("Ada")
    t1 = make_task(name="t1", assigned_user=user["_id"])
    t2 = make_task(name="t2", assigned_user=user["_id"])
    t3 = make_task(name="t3")

    res = client.put(f"/users/{user['_id']}", json={
        "name": "Ada",
        "email": "ada@example.com",
        "pendingTasks": [t2["_id"], t3["_id"]],
    })

    assert res.status_code == 200
    assert res.json()["message"] == "User updated"
    assert sorted(res.json()["data"]["pendingTasks"]) == sorted([t2["_id"], t3["_id"]])
    assert _task(client, t1["_id"])["assignedUser"] == ""
    assert _task(client, t1["_id"])["assignedUserName"] == "unassigned"
    assert _task(client, t2["_id"])["assignedUser"] == user["_id"]
    assert _task(client, t3["_id"])["assignedUser"] == user["_id"]


def test_replace_stores_derived_set_not_client_list(client, make_user, make_task):
    user = make_user("Ada")
    done = make_task(name="done", completed=True)

    res = client.put(f"/users/{user['_id']}", json={
        "name": "Ada",
        "email": "ada@example.com",
        "pendingTasks": [done["_id"], done["_id"], MISSING_ID],
    })

    assert res.json()["data"]["pendingTasks"] == []
    assert _task(client, done["_id"])["assignedUser"] == user["_id"]


def test_replace_without_pending_unassigns_everything(client, make_user, make_task):
    user = make_user("Ada")
    task = make_task(assigned_user=user["_id"])

    res = client.put(f"/users/{user['_id']}", json={"name": "Ada", "email": "ada@example.com"})

    assert res.json()["data"]["pendingTasks"] == []
    assert _task(client, task["_id"])["assignedUser"] == ""


def test_rename_refreshes_assigned_user_name(client, make_user, make_task):
    user = make_user("Ada")
    task = make_task(assigned_user=user["_id"])

    client.put(f"/users/{user['_id']}", json={
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "pendingTasks": [task["_id"]],
    })

    assert _task(client, task["_id"])["assignedUserName"] == "Ada Lovelace"


def test_replace_duplicate_email(client, make_user):
    make_user("Ada")
    bob = make_user("Bob")

    res = client.put(f"/users/{bob['_id']}", json={"name": "Bob", "email": "ada@example.com"})

    assert res.status_code == 400
    assert res.json()["data"]["code"] == "DUPLICATE_KEY"


def test_replace_missing_user_returns_404(client):
    res = client.put(f"/users/{MISSING_ID}", json={"name": "Ada", "email": "ada@example.com"})
    assert res.status_code == 404
    assert res.json()["message"] == "User not found"


def test_delete_user_unassigns_all_tasks(client, make_user, make_task):
    user = make_user("Ada")
    pending = make_task(name="pending", assigned_user=user["_id"])
    done = make_task(name="done", assigned_user=user["_id"], completed=True)

    res = client.delete(f"/users/{user['_id']}")

    assert res.status_code == 204
    assert client.get(f"/users/{user['_id']}").status_code == 404
    for task in (pending, done):
        stored = _task(client, task["_id"])
        assert stored["assignedUser"] == ""
        assert stored["assignedUserName"] == "unassigned"


def test_delete_missing_user_returns_404(client):
    assert client.delete(f"/users/{MISSING_ID}").status_code == 404


def test_list_users_is_unlimited_by_default(client, make_user):
    for i in range(120):
        client.post("/users", json={"name": f"u{i}", "email": f"u{i}@example.com"})
    assert len(client.get("/users").json()["data"]) == 120


def test_list_users_select_and_count(client, make_user):
    make_user("Ada")
    make_user("Bob")

    res = client.get("/users", params={"select": json.dumps({"name": 1, "_id": 0}), "sort": json.dumps({"name": -1})})
    assert res.json()["data"] == [{"name": "Bob"}, {"name": "Ada"}]

    res = client.get("/users", params={"count": "true", "where": json.dumps({"name": "Ada"})})
    assert res.json()["data"] == 1


def test_list_users_rejects_mixed_projection(client):
    res = client.get("/users", params={"select": json.dumps({"name": 1, "email": 0})})
    assert res.status_code == 400


def test_create_user_from_form_body(client, make_task):
    t1 = make_task(name="t1")
    t2 = make_task(name="t2")

    res = client.post("/users", data={
        "name": "Ada",
        "email": "ada@example.com",
        "pendingTasks": [t1["_id"], t2["_id"]],
    })

    assert res.status_code == 201
    assert sorted(res.json()["data"]["pendingTasks"]) == sorted([t1["_id"], t2["_id"]])


def test_replace_user_from_form_body(client, make_user, make_task):
    user = make_user("Ada")
    t1 = make_task(name="t1", assigned_user=user["_id"])
    t2 = make_task(name="t2")

    res = client.put(f"/users/{user['_id']}", data={
        "name": "Ada",
        "email": "ada@example.com",
        "pendingTasks": t2["_id"],
    })

    assert res.status_code == 200
    assert res.json()["data"]["pendingTasks"] == [t2["_id"]]
    assert _task(client, t1["_id"])["assignedUser"] == ""

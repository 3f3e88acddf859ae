from sqlalchemy import func, select

from taskboard.db import Card, ColumnModel


def test_create_board_seeds_three_columns(client, headers):
    resp = client.post("/api/boards", json={"title": "Home"}, headers=headers)
    assert resp.status_code == 201
    board = resp.json()["board"]
    assert board["title"] == "Home"
    assert [c["title"] for c in board["columns"]] == ["To-do", "Doing", "Done"]
    assert [c["order"] for c in board["columns"]] == [0, 1, 2]
    assert all(c["cards"] == [] for c in board["columns"])

    fetched = client.get(f"/api/boards/{board['id']}", headers=headers).json()["board"]
    assert fetched == board


def test_create_board_requires_title(client, headers):
    assert client.post("/api/boards", json={}, headers=headers).status_code == 400
    assert client.post("/api/boards", json={"title": ""}, headers=headers).status_code == 400
    resp = client.post("/api/boards", json={"title": "   "}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


def test_list_boards_most_recently_updated_first(client, headers):
    first = client.post("/api/boards", json={"title": "First"}, headers=headers).json()["board"]
    client.post("/api/boards", json={"title": "Second"}, headers=headers)
    titles = [b["title"] for b in client.get("/api/boards", headers=headers).json()["boards"]]
    assert titles == ["Second", "First"]

    client.put(f"/api/boards/{first['id']}", json={"title": "First again"}, headers=headers)
    titles = [b["title"] for b in client.get("/api/boards", headers=headers).json()["boards"]]
    assert titles == ["First again", "Second"]


def test_list_boards_nests_columns_and_cards(client, headers, board, add_card):
    add_card(board["columns"][1]["id"], "Write tests")
    boards = client.get("/api/boards", headers=headers).json()["boards"]
    assert len(boards) == 1
    assert boards[0]["columns"][1]["cards"][0]["title"] == "Write tests"


def test_update_board_renames(client, headers, board):
    resp = client.put(f"/api/boards/{board['id']}", json={"title": "Renamed"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["board"]["title"] == "Renamed"
    assert len(resp.json()["board"]["columns"]) == 3


def test_delete_board_cascades(client, headers, board, add_card, db):
    add_card(board["columns"][0]["id"], "One")
    add_card(board["columns"][2]["id"], "Two")

    resp = client.delete(f"/api/boards/{board['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Board deleted successfully"}

    assert client.get(f"/api/boards/{board['id']}", headers=headers).status_code == 404
    assert db.scalar(select(func.count()).select_from(ColumnModel)) == 0
    assert db.scalar(select(func.count()).select_from(Card)) == 0


def test_add_column_appends(client, headers, board):
    resp = client.post(f"/api/boards/{board['id']}/columns", json={"title": "Blocked"}, headers=headers)
    assert resp.status_code == 201
    column = resp.json()["column"]
    assert column["order"] == 3
    assert column["boardId"] == board["id"]
    assert column["cards"] == []

    columns = client.get(f"/api/boards/{board['id']}", headers=headers).json()["board"]["columns"]
    assert [c["order"] for c in columns] == [0, 1, 2, 3]
    assert columns[-1]["title"] == "Blocked"


def test_add_column_requires_title(client, headers, board):
    resp = client.post(f"/api/boards/{board['id']}/columns", json={"title": ""}, headers=headers)
    assert resp.status_code == 400


def test_missing_board_is_404(client, headers):
    resp = client.get("/api/boards/does-not-exist", headers=headers)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Board not found", "code": "not_found"}


def test_other_users_board_is_invisible(client, headers, board, make_user):
    intruder = make_user()
    board_id = board["id"]

    assert client.get(f"/api/boards/{board_id}", headers=intruder).status_code == 404
    assert client.put(f"/api/boards/{board_id}", json={"title": "Mine"}, headers=intruder).status_code == 404
    assert client.delete(f"/api/boards/{board_id}", headers=intruder).status_code == 404
    resp = client.post(f"/api/boards/{board_id}/columns", json={"title": "X"}, headers=intruder)
    assert resp.status_code == 404
    assert client.get("/api/boards", headers=intruder).json() == {"boards": []}

    # still intact for the owner
    owned = client.get(f"/api/boards/{board_id}", headers=headers).json()["board"]
    assert owned["title"] == "Sprint"
    assert len(owned["columns"]) == 3

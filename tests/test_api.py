from conftest import PASSWORD, auth_headers, move_due_date
from library_backend.models.transaction import Transaction


def _book_payload(**overrides):
    payload = {
        "isbn": "978-0-13-235088-4",
        "title": "Clean Code",
        "author": "Robert C. Martin",
        "category": "Programming",
        "totalCopies": 2,
        "finePerDay": 5,
    }
    payload.update(overrides)
    return payload


def test_root_and_health(client):
    assert client.get("/").json()["version"] == "1.0.0"
    health = client.get("/api/health").json()
    assert health["status"] == "healthy"
    assert health["mqtt"] is False


def test_register_approve_login_flow(client, admin):
    response = client.post("/api/auth/register", json={
        "email": "new.member@citylibrary.org",
        "password": PASSWORD,
        "firstName": "New",
        "lastName": "Member",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    user_id = body["data"]["user"]["id"]
    assert body["data"]["user"]["status"] == "PENDING_APPROVAL"

    credentials = {"email": "new.member@citylibrary.org", "password": PASSWORD}
    response = client.post("/api/auth/login", json=credentials)
    assert response.status_code == 403
    assert response.json() == {"success": False, "message": "Your account is pending approval"}

    response = client.post(f"/api/users/{user_id}/approve", headers=auth_headers(admin))
    assert response.status_code == 200

    response = client.post("/api/auth/login", json=credentials)
    assert response.status_code == 200
    token = response.json()["data"]["accessToken"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["data"]["user"]["id"] == user_id


def test_missing_or_bad_token_is_unauthorized(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json()["success"] is False

    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_validation_errors_use_envelope(client, librarian):
    response = client.post("/api/books", json=_book_payload(isbn="12345"), headers=auth_headers(librarian))
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "isbn" in body["message"]


def test_role_gates(client, member, librarian, admin, super_admin):
    response = client.post("/api/books", json=_book_payload(), headers=auth_headers(member))
    assert response.status_code == 403

    response = client.patch("/api/settings/library.name", json={"value": "Branch"}, headers=auth_headers(librarian))
    assert response.status_code == 403

    response = client.patch("/api/settings/library.name", json={"value": "Branch"}, headers=auth_headers(super_admin))
    assert response.status_code == 200
    assert response.json()["data"]["setting"]["value"] == "Branch"

    response = client.get("/api/reports/financial/summary", headers=auth_headers(librarian))
    assert response.status_code == 403
    response = client.get("/api/reports/financial/summary", headers=auth_headers(admin))
    assert response.status_code == 200


def test_create_book_and_duplicate_isbn(client, librarian):
    response = client.post("/api/books", json=_book_payload(), headers=auth_headers(librarian))
    assert response.status_code == 201
    book = response.json()["data"]["book"]
    assert book["isbn"] == "9780132350884"
    assert book["totalCopies"] == book["availableCopies"] == 2

    response = client.post("/api/books", json=_book_payload(), headers=auth_headers(librarian))
    assert response.status_code == 409

    copies = client.get(f"/api/books/{book['id']}/copies", headers=auth_headers(librarian)).json()["data"]
    assert [c["barcode"] for c in copies["copies"]] == [
        f"BC-{book['id'][:8]}-001", f"BC-{book['id'][:8]}-002"
    ]


def test_book_listing_is_paginated(client, make_book):
    for _ in range(3):
        make_book()

    body = client.get("/api/books", params={"page": 2, "limit": 2}).json()
    assert len(body["data"]["items"]) == 1
    assert body["data"]["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}


def test_issue_and_late_return_over_http(client, db, book, member, librarian):
    response = client.post(
        "/api/transactions/issue",
        json={"bookId": book.id, "userId": member.id},
        headers=auth_headers(librarian),
    )
    assert response.status_code == 201
    transaction = response.json()["data"]["transaction"]
    assert transaction["status"] == "ISSUED"
    assert transaction["librarianId"] == librarian.id

    move_due_date(db, db.query(Transaction).filter(Transaction.id == transaction["id"]).one(), days_ago=10)

    response = client.post(
        f"/api/transactions/{transaction['id']}/return",
        json={"damageCharge": 2.5},
        headers=auth_headers(librarian),
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["daysOverdue"] == 10
    assert data["transaction"]["fineAmount"] == 50.0
    assert data["totalCharges"] == 52.5

    availability = client.get(f"/api/books/{book.id}/availability").json()["data"]
    assert availability["availableCopies"] == 3

    response = client.post(
        f"/api/transactions/{transaction['id']}/pay-fine",
        json={"amount": 60, "paymentMethod": "CASH"},
        headers=auth_headers(librarian),
    )
    assert response.status_code == 200
    assert response.json()["data"]["change"] == 7.5


def test_members_see_only_their_own_records(client, book, member, make_user, librarian):
    stranger = make_user()
    issued = client.post(
        "/api/transactions/issue",
        json={"bookId": book.id, "userId": member.id},
        headers=auth_headers(librarian),
    ).json()["data"]["transaction"]

    assert client.get(f"/api/transactions/{issued['id']}", headers=auth_headers(member)).status_code == 200
    assert client.get(f"/api/transactions/{issued['id']}", headers=auth_headers(stranger)).status_code == 403
    assert client.get(f"/api/transactions/user/{member.id}", headers=auth_headers(stranger)).status_code == 403
    assert client.get(f"/api/users/{member.id}", headers=auth_headers(stranger)).status_code == 403
    assert client.get(f"/api/payments/user/{member.id}", headers=auth_headers(stranger)).status_code == 403

    own = client.get(f"/api/transactions/user/{member.id}", headers=auth_headers(member)).json()["data"]
    assert own["pagination"]["total"] == 1


def test_borrow_request_flow_over_http(client, book, member, librarian):
    created = client.post(
        "/api/transactions/requests", json={"bookId": book.id}, headers=auth_headers(member)
    )
    assert created.status_code == 201
    request_id = created.json()["data"]["borrowRequest"]["id"]

    mine = client.get("/api/transactions/requests/my", headers=auth_headers(member))
    assert mine.status_code == 200
    assert [r["id"] for r in mine.json()["data"]["borrowRequests"]] == [request_id]

    approved = client.post(
        f"/api/transactions/requests/{request_id}/approve", json={}, headers=auth_headers(librarian)
    )
    assert approved.status_code == 200
    data = approved.json()["data"]
    assert data["borrowRequest"]["status"] == "APPROVED"
    assert data["transaction"]["userId"] == member.id

    again = client.post(
        f"/api/transactions/requests/{request_id}/approve", json={}, headers=auth_headers(librarian)
    )
    assert again.status_code == 400


def test_unknown_resources_return_404(client, librarian):
    response = client.get("/api/books/does-not-exist")
    assert response.status_code == 404
    assert response.json()["success"] is False

    response = client.post("/api/transactions/missing/return", json={}, headers=auth_headers(librarian))
    assert response.status_code == 404


def test_notifications_endpoints(client, book, member, librarian):
    client.post(
        "/api/transactions/issue",
        json={"bookId": book.id, "userId": member.id},
        headers=auth_headers(librarian),
    )

    count = client.get("/api/notifications/unread-count", headers=auth_headers(member)).json()["data"]["count"]
    assert count == 1

    updated = client.patch("/api/notifications/read-all", headers=auth_headers(member)).json()["data"]["updated"]
    assert updated == 1
    listing = client.get("/api/notifications", params={"read": "false"}, headers=auth_headers(member)).json()
    assert listing["data"]["items"] == []


def test_payment_breakdown_is_readable_by_its_owner(client, book, member, make_user, librarian):
    stranger = make_user()
    issued = client.post(
        "/api/transactions/issue",
        json={"bookId": book.id, "userId": member.id},
        headers=auth_headers(librarian),
    ).json()["data"]["transaction"]
    url = f"/api/payments/transaction/{issued['id']}/breakdown"

    own = client.get(url, headers=auth_headers(member))
    assert own.status_code == 200
    assert own.json()["data"]["transactionId"] == issued["id"]
    assert own.json()["data"]["pendingAmount"] == 0.0

    response = client.get(url, headers=auth_headers(stranger))
    assert response.status_code == 403
    assert response.json()["success"] is False

    assert client.get(url, headers=auth_headers(librarian)).status_code == 200


def test_update_own_profile_through_me(client, member):
    response = client.patch("/api/users/me", json={"phone": "555-0100"}, headers=auth_headers(member))
    assert response.status_code == 200
    assert response.json()["data"]["user"]["id"] == member.id
    assert response.json()["data"]["user"]["phone"] == "555-0100"

    promoted = client.patch("/api/users/me", json={"role": "LIBRARIAN"}, headers=auth_headers(member))
    assert promoted.status_code == 403


def test_inventory_and_bulk_import_endpoints(client, book, member, librarian):
    response = client.patch(
        f"/api/books/{book.id}/inventory", json={"quantity": 5}, headers=auth_headers(librarian)
    )
    assert response.status_code == 200
    assert response.json()["data"]["book"]["totalCopies"] == 5
    assert response.json()["data"]["book"]["availableCopies"] == 5

    forbidden = client.patch(
        f"/api/books/{book.id}/inventory", json={"quantity": 1}, headers=auth_headers(member)
    )
    assert forbidden.status_code == 403
    negative = client.patch(
        f"/api/books/{book.id}/inventory", json={"quantity": -1}, headers=auth_headers(librarian)
    )
    assert negative.status_code == 400

    response = client.post(
        "/api/books/bulk-import",
        json={"books": [_book_payload(), _book_payload(isbn=book.isbn, title="Copycat")]},
        headers=auth_headers(librarian),
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["createdCount"] == 1
    assert data["failed"][0]["title"] == "Copycat"

    empty = client.post("/api/books/bulk-import", json={"books": []}, headers=auth_headers(librarian))
    assert empty.status_code == 400


def test_book_transaction_history_is_staff_only(client, book, member, librarian):
    client.post(
        "/api/transactions/issue",
        json={"bookId": book.id, "userId": member.id},
        headers=auth_headers(librarian),
    )

    response = client.get(f"/api/transactions/book/{book.id}", headers=auth_headers(librarian))
    assert response.status_code == 200
    assert response.json()["data"]["pagination"]["total"] == 1
    assert response.json()["data"]["items"][0]["bookId"] == book.id

    assert client.get(f"/api/transactions/book/{book.id}", headers=auth_headers(member)).status_code == 403
    assert client.get("/api/transactions/book/missing", headers=auth_headers(librarian)).status_code == 404


def test_clear_all_notifications(client, book, member, librarian):
    client.post(
        "/api/transactions/issue",
        json={"bookId": book.id, "userId": member.id},
        headers=auth_headers(librarian),
    )

    response = client.delete("/api/notifications", headers=auth_headers(member))
    assert response.status_code == 200
    assert response.json()["data"]["deleted"] == 1
    assert client.get("/api/notifications/unread-count", headers=auth_headers(member)).json()["data"]["count"] == 0

"""HTTP-level tests: routing, role checks and error bodies."""
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import as_user
from utils.factories import create_member


def _money(value) -> Decimal:
    return Decimal(str(value))


def _flight_body(setup, **readings) -> dict:
    meter_readings = {
        "hobbs_start": "1000.0",
        "hobbs_end": "1001.0",
        "tach_start": "800.0",
        "tach_end": "800.8",
        "solo_end_hobbs": "1001.8",
    }
    meter_readings.update(readings)
    return {
        "meter_readings": meter_readings,
        "flight_type_id": str(setup["dual"].id),
        "solo_flight_type_id": str(setup["solo"].id),
    }


async def _create_invoice(client: AsyncClient, member, unit_price: str = "200.00") -> dict:
    response = await client.post(
        "/v1/invoices",
        json={
            "user_id": str(member.id),
            "reference": "Circuits - ZK-ABC",
            "items": [{"description": "Aircraft hire", "quantity": "1", "unit_price": unit_price}],
        },
    )
    assert response.status_code == 201
    return response.json()


async def _approve(client: AsyncClient, invoice_id: str) -> dict:
    response = await client.patch(f"/v1/invoices/{invoice_id}", json={"status": "pending"})
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_health_check(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_create_invoice(async_client: AsyncClient, db_session: AsyncSession) -> None:
    """Item money fields come back computed by the server."""
    member = await create_member(db_session)

    body = await _create_invoice(async_client, member)

    assert body["status"] == "draft"
    assert body["invoice_number"] == "INV-000001"
    assert _money(body["total_amount"]) == Decimal("230.00")
    assert len(body["items"]) == 1
    assert _money(body["items"][0]["tax_amount"]) == Decimal("30.00")


@pytest.mark.asyncio
async def test_member_cannot_create_invoice(async_client: AsyncClient, db_session: AsyncSession, auth: dict) -> None:
    member = await create_member(db_session)
    auth.update(as_user(member))

    response = await async_client.post(
        "/v1/invoices",
        json={"user_id": str(member.id), "items": []},
    )

    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "AuthorizationError"
    assert body["details"][0]["code"] == "forbidden"
    assert body["request_id"]


@pytest.mark.asyncio
async def test_request_validation_error_body(async_client: AsyncClient) -> None:
    response = await async_client.post("/v1/invoices", json={"user_id": "not-a-uuid"})

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "RequestValidationError"
    assert {detail["field"] for detail in body["details"]} >= {"body.user_id"}


@pytest.mark.asyncio
async def test_members_only_list_their_own_invoices(
    async_client: AsyncClient, db_session: AsyncSession, auth: dict
) -> None:
    member = await create_member(db_session)
    other = await create_member(db_session)
    await _create_invoice(async_client, member)
    await _create_invoice(async_client, other)

    auth.update(as_user(member))
    response = await async_client.get("/v1/invoices", params={"user_id": str(other.id)})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["user_id"] == str(member.id)


@pytest.mark.asyncio
async def test_member_cannot_read_another_members_invoice(
    async_client: AsyncClient, db_session: AsyncSession, auth: dict
) -> None:
    member = await create_member(db_session)
    stranger = await create_member(db_session)
    invoice = await _create_invoice(async_client, member)

    auth.update(as_user(stranger))
    response = await async_client.get(f"/v1/invoices/{invoice['id']}")

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_missing_invoice_returns_404(async_client: AsyncClient) -> None:
    response = await async_client.get(f"/v1/invoices/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["details"][0]["code"] == "not_found"


@pytest.mark.asyncio
async def test_flight_preview(async_client: AsyncClient, flight_setup) -> None:
    response = await async_client.post(
        f"/v1/bookings/{flight_setup['booking'].id}/charges/preview", json=_flight_body(flight_setup)
    )

    assert response.status_code == 200
    body = response.json()
    assert len(body["invoice_items"]) == 3
    assert _money(body["flight_log"]["dual_time"]) == Decimal("1.0")
    assert _money(body["flight_log"]["solo_time"]) == Decimal("0.8")
    assert _money(body["totals"]["total_amount"]) == Decimal("464.60")


@pytest.mark.asyncio
async def test_flight_preview_rejects_backwards_meters(async_client: AsyncClient, flight_setup) -> None:
    response = await async_client.post(
        f"/v1/bookings/{flight_setup['booking'].id}/charges/preview",
        json=_flight_body(flight_setup, hobbs_end="999.5"),
    )

    assert response.status_code == 400
    detail = response.json()["details"][0]
    assert detail["code"] == "validation_error"
    assert detail["field"] == "hobbs_end"


@pytest.mark.asyncio
async def test_flight_preview_without_rate(async_client: AsyncClient, db_session: AsyncSession, flight_setup) -> None:
    """A missing rate is a 404 with its own code, not a generic not-found."""
    from utils.factories import create_flight_type

    unpriced = await create_flight_type(db_session, name="Formation")
    await db_session.commit()
    body = _flight_body(flight_setup)
    body["flight_type_id"] = str(unpriced.id)

    response = await async_client.post(f"/v1/bookings/{flight_setup['booking'].id}/charges/preview", json=body)

    assert response.status_code == 404
    assert response.json()["details"][0]["code"] == "rate_not_configured"

    response = await async_client.post(f"/v1/bookings/{uuid4()}/charges/preview", json=_flight_body(flight_setup))
    assert response.status_code == 404
    assert response.json()["details"][0]["code"] == "not_found"


@pytest.mark.asyncio
async def test_complete_flight(async_client: AsyncClient, flight_setup) -> None:
    response = await async_client.post(
        f"/v1/bookings/{flight_setup['booking'].id}/charges/complete", json=_flight_body(flight_setup)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["warning"] is None
    assert body["invoice"]["status"] == "pending"
    assert len(body["invoice"]["items"]) == 3
    assert _money(body["totals"]["total_amount"]) == Decimal("464.60")


@pytest.mark.asyncio
async def test_overpayment_returns_400(async_client: AsyncClient, db_session: AsyncSession) -> None:
    member = await create_member(db_session)
    invoice = await _create_invoice(async_client, member)
    await _approve(async_client, invoice["id"])

    response = await async_client.post(
        f"/v1/invoices/{invoice['id']}/payments", json={"amount": "500.00", "payment_method": "cash"}
    )

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "amount"

    response = await async_client.post(
        f"/v1/invoices/{invoice['id']}/payments", json={"amount": "230.00", "payment_method": "cash"}
    )
    assert response.status_code == 201
    body = response.json()
    assert body["invoice"]["status"] == "paid"
    assert _money(body["account_balance"]) == Decimal("0.00")


PAID_INVOICE_EDITS = [
    {"notes": "Paid at the desk"},
    {"reference": "Circuits - ZK-XYZ"},
    {"due_date": "2026-12-01T00:00:00"},
    {"tax_rate": "0.10"},
    {"status": "cancelled"},
]


@pytest.mark.asyncio
@pytest.mark.parametrize("role", ["admin", "member"])
@pytest.mark.parametrize("changes", PAID_INVOICE_EDITS)
async def test_paid_invoice_rejects_every_edit(
    async_client: AsyncClient, db_session: AsyncSession, auth: dict, role: str, changes: dict
) -> None:
    """Neither the owning member nor an admin can change any field of a paid invoice."""
    member = await create_member(db_session)
    invoice = await _create_invoice(async_client, member)
    await _approve(async_client, invoice["id"])
    response = await async_client.post(
        f"/v1/invoices/{invoice['id']}/payments", json={"amount": "230.00", "payment_method": "cash"}
    )
    assert response.json()["invoice"]["status"] == "paid"

    if role == "member":
        auth.update(as_user(member))
    response = await async_client.patch(f"/v1/invoices/{invoice['id']}", json=changes)

    assert response.status_code == 409
    body = response.json()
    assert body["details"][0]["code"] == "immutable"
    assert body["remediation"] == "Cannot modify a paid invoice. Issue a credit note instead."


@pytest.mark.asyncio
async def test_member_edits_on_pending_invoice(async_client: AsyncClient, db_session: AsyncSession, auth: dict) -> None:
    """Members may change notes on their pending invoice but not its reference."""
    member = await create_member(db_session)
    invoice = await _create_invoice(async_client, member)
    await _approve(async_client, invoice["id"])
    auth.update(as_user(member))

    response = await async_client.patch(f"/v1/invoices/{invoice['id']}", json={"notes": "Will pay Friday"})
    assert response.status_code == 200
    assert response.json()["notes"] == "Will pay Friday"

    response = await async_client.patch(f"/v1/invoices/{invoice['id']}", json={"reference": "Changed"})
    assert response.status_code == 403
    assert response.json()["details"][0]["code"] == "forbidden"


@pytest.mark.asyncio
async def test_credit_note_applies_once(async_client: AsyncClient, db_session: AsyncSession) -> None:
    member = await create_member(db_session)
    invoice = await _create_invoice(async_client, member)
    await _approve(async_client, invoice["id"])

    response = await async_client.post(
        f"/v1/invoices/{invoice['id']}/credit-notes",
        json={
            "user_id": str(member.id),
            "reason": "Cut short by weather",
            "items": [{"description": "Credit: aircraft hire", "quantity": "0.5", "unit_price": "200.00"}],
        },
    )
    assert response.status_code == 201
    credit_note_id = response.json()["id"]

    response = await async_client.post(f"/v1/credit-notes/{credit_note_id}/apply")
    assert response.status_code == 200
    assert _money(response.json()["account_balance"]) == Decimal("115.00")

    response = await async_client.post(f"/v1/credit-notes/{credit_note_id}/apply")
    assert response.status_code == 409
    body = response.json()
    assert body["details"][0]["code"] == "immutable"
    assert body["remediation"]


@pytest.mark.asyncio
async def test_member_reads_own_statement(async_client: AsyncClient, db_session: AsyncSession, auth: dict) -> None:
    member = await create_member(db_session)
    invoice = await _create_invoice(async_client, member)
    await _approve(async_client, invoice["id"])

    auth.update(as_user(member))
    response = await async_client.get(f"/v1/members/{member.id}/statement")

    assert response.status_code == 200
    body = response.json()
    assert len(body["entries"]) == 1
    assert _money(body["closing_balance"]) == Decimal("230.00")

    response = await async_client.get(f"/v1/members/{uuid4()}/statement")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_membership_purchase(async_client: AsyncClient, db_session: AsyncSession) -> None:
    """Creating a membership also invoices the fee."""
    from utils.factories import create_membership_type

    member = await create_member(db_session)
    membership_type = await create_membership_type(db_session)
    await db_session.commit()

    response = await async_client.post(
        "/v1/memberships", json={"user_id": str(member.id), "membership_type_id": str(membership_type.id)}
    )

    assert response.status_code == 201
    body = response.json()
    assert body["warning"] is None
    assert body["membership"]["status"] == "unpaid"
    assert _money(body["invoice"]["total_amount"]) == Decimal("230.00")

import pytest

from shopchat.model.complaint.complaint import ComplaintRecord, CustomerContact
from shopchat.service.errors import ComplaintNotFound, InvalidStatusTransition


def _record(session_id, **fields):
    return ComplaintRecord(
        session_id=session_id,
        conversation_id=1,
        summary=f"Khiếu nại từ session {session_id}",
        detailed_description=fields.pop("detailed_description", "Màn hình bị sọc"),
        **fields,
    )


@pytest.mark.asyncio
async def test_create_and_find_active(complaint_store, session_id):
    assert await complaint_store.find_active_for_session(session_id) is None

    created = await complaint_store.create(
        _record(session_id, tags=["Defective", "screen", "defective"], priority="high")
    )

    assert created.id is not None
    assert created.status == "open"
    assert created.tags == ["defective", "screen"]
    assert created.resolved_at is None

    found = await complaint_store.find_active_for_session(session_id)
    assert found.id == created.id


@pytest.mark.asyncio
async def test_create_with_contact_can_start_in_progress(complaint_store, session_id):
    created = await complaint_store.create(
        _record(session_id, status="in_progress", customer_contact=CustomerContact(email="A@B.com"))
    )

    assert created.status == "in_progress"
    assert created.customer_contact.email == "a@b.com"


@pytest.mark.asyncio
async def test_resolved_at_tracks_resolved_state(complaint_store, session_id):
    created = await complaint_store.create(_record(session_id))

    progressed = await complaint_store.mark_in_progress(created.id, assignee="agent-7")
    assert progressed.status == "in_progress"
    assert progressed.assigned_to == "agent-7"
    assert progressed.resolved_at is None

    resolved = await complaint_store.resolve(created.id, notes="Đổi máy mới")
    assert resolved.status == "resolved"
    assert resolved.resolved_at is not None
    assert resolved.resolution_notes == "Đổi máy mới"
    assert await complaint_store.find_active_for_session(session_id) is None

    closed = await complaint_store.close(created.id)
    assert closed.status == "closed"
    assert closed.resolved_at is None


@pytest.mark.asyncio
async def test_illegal_transitions_are_rejected(complaint_store, session_id):
    created = await complaint_store.create(_record(session_id))
    await complaint_store.close(created.id)

    with pytest.raises(InvalidStatusTransition):
        await complaint_store.mark_in_progress(created.id)
    with pytest.raises(InvalidStatusTransition):
        await complaint_store.resolve(created.id)

    assert (await complaint_store.get(created.id)).status == "closed"


@pytest.mark.asyncio
async def test_save_merges_fields_and_moves_status(complaint_store, session_id):
    created = await complaint_store.create(_record(session_id))

    updated = await complaint_store.save(
        created.model_copy(
            update={
                "status": "in_progress",
                "tags": created.tags + ["Shipping"],
                "customer_contact": CustomerContact(phone="0901 234 567"),
            }
        )
    )

    assert updated.status == "in_progress"
    assert updated.tags == ["shipping"]
    assert updated.customer_contact.phone == "0901234567"
    assert updated.updated_at is not None


@pytest.mark.asyncio
async def test_update_contact_validates_input(complaint_store, session_id):
    created = await complaint_store.create(_record(session_id))

    updated = await complaint_store.update_contact(created.id, email="Buyer@Shop.vn")
    assert updated.customer_contact.email == "buyer@shop.vn"

    with pytest.raises(ValueError):
        await complaint_store.update_contact(created.id, phone="123")

    with pytest.raises(ComplaintNotFound):
        await complaint_store.update_contact(9999, email="a@b.com")


@pytest.mark.asyncio
async def test_list_unresolved_orders_by_priority(complaint_store):
    low = await complaint_store.create(_record("11111111-1111-4111-8111-111111111111", priority="low"))
    urgent = await complaint_store.create(_record("22222222-2222-4222-8222-222222222222", priority="urgent"))
    done = await complaint_store.create(_record("33333333-3333-4333-8333-333333333333", priority="high"))
    await complaint_store.resolve(done.id)

    unresolved = await complaint_store.list_unresolved()

    assert [c.id for c in unresolved] == [urgent.id, low.id]

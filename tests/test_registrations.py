"""
Tests for the registration workflow.
"""
from datetime import datetime, timedelta, timezone
import pytest
from httpx import AsyncClient
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agsuite.core.errors import (
    CapacityExceeded, DuplicateRegistration, InvalidStateTransition, ModalityFull,
    NotFoundError, RegistrationClosed, ReviewNotesRequired, ValidationError,
)
from agsuite.models.assembly import AssemblyStatus, AssemblyType
from agsuite.models.registration import RegistrationStatus, ParticipantType
from agsuite.schemas.ag_config import AdmissionConfig
from agsuite.schemas.registration import PaymentInfo, ReceiptAttach, ReviewDecision
from agsuite.services import modality_ledger, registrations
from agsuite.services.registrations import identity_key
from tests.factories import (
    ORGANIZER_ID, RecordingNotifier, FakeReceiptStorage, add_assembly, add_modality,
    add_registration, make_form, user_headers,
)


RECEIPT = ReceiptAttach(storage_id="receipts/abc.pdf", file_name="abc.pdf", file_type="application/pdf", file_size=2048)


class TestIdentityKey:
    """Test the per-assembly uniqueness key."""

    def test_board_member_keyed_by_entity(self):
        assert identity_key(ParticipantType.EXECUTIVE_BOARD, " EB-PRES ", "user-1") == "executive_board:EB-PRES"
        assert identity_key(ParticipantType.REGIONAL_COORDINATOR, "CR-SUL", "user-1") == "regional_coordinator:CR-SUL"

    def test_board_member_without_entity_keyed_by_user(self):
        assert identity_key(ParticipantType.EXECUTIVE_BOARD, None, "user-1") == "user:user-1"

    def test_committee_delegate_keyed_by_user(self):
        """Test that several delegates of one committee can register."""
        assert identity_key(ParticipantType.LOCAL_COMMITTEE, "USP", "user-1") == "user:user-1"

    def test_other_has_no_key(self):
        assert identity_key(ParticipantType.OTHER, None, "user-1") is None


class TestCreateRegistration:
    """Test admission."""

    @pytest.mark.asyncio
    async def test_create_pending(self, db_session: AsyncSession, test_assembly, test_modality, open_config, notifier):
        registration, auto = await registrations.create(
            db_session, test_assembly.id, test_modality.id, "user-1",
            make_form(ParticipantType.LOCAL_COMMITTEE, entity_id="USP", committee_name="Comitê USP"),
            open_config, notifier=notifier,
        )
        assert auto is False
        assert registration.status == RegistrationStatus.PENDING
        assert registration.modality_id == test_modality.id
        assert registration.participant_name == "Ana Souza"
        assert registration.entity_id == "USP"
        assert registration.registered_by == "user-1"
        assert registration.reviewed_by is None
        assert notifier.kinds == ["registration_created"]
        _, payload = notifier.events[0]
        assert payload["modality_name"] == "Participante"
        assert payload["email"] == "ana@example.com"

    @pytest.mark.asyncio
    async def test_create_auto_approved(self, db_session: AsyncSession, test_assembly, test_modality, notifier):
        config = AdmissionConfig(registration_enabled=True, auto_approval=True)
        registration, auto = await registrations.create(
            db_session, test_assembly.id, test_modality.id, "user-1", make_form(), config, notifier=notifier,
        )
        assert auto is True
        assert registration.status == RegistrationStatus.APPROVED
        assert registration.reviewed_by == "system"
        assert registration.review_notes == "Auto-approved by system"
        assert registration.reviewed_at is not None
        assert notifier.kinds == ["registration_auto_approved"]

    @pytest.mark.asyncio
    async def test_create_with_payment_exemption(self, db_session: AsyncSession, test_assembly, test_modality, open_config):
        registration, _ = await registrations.create(
            db_session, test_assembly.id, test_modality.id, "user-1", make_form(), open_config,
            payment=PaymentInfo(is_payment_exempt=True, payment_exempt_reason="Scholarship"),
        )
        assert registration.is_payment_exempt is True
        assert registration.payment_exempt_reason == "Scholarship"
        assert registration.status == RegistrationStatus.PENDING

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_fail_admission(self, db_session: AsyncSession, test_assembly, test_modality, open_config):
        registration, _ = await registrations.create(
            db_session, test_assembly.id, test_modality.id, "user-1", make_form(), open_config,
            notifier=RecordingNotifier(fail=True),
        )
        assert (await registrations.get_registration(db_session, registration.id)).status == RegistrationStatus.PENDING

    @pytest.mark.asyncio
    async def test_registration_disabled(self, db_session: AsyncSession, test_assembly, test_modality):
        config = AdmissionConfig(registration_enabled=False)
        with pytest.raises(RegistrationClosed):
            await registrations.create(db_session, test_assembly.id, test_modality.id, "user-1", make_form(), config)

    @pytest.mark.asyncio
    async def test_registration_closed(self, db_session: AsyncSession, open_config):
        assembly = await add_assembly(db_session, name="Closed AG", registration_open=False)
        modality = await add_modality(db_session, assembly)
        with pytest.raises(RegistrationClosed):
            await registrations.create(db_session, assembly.id, modality.id, "user-1", make_form(), open_config)

    @pytest.mark.asyncio
    async def test_assembly_not_active(self, db_session: AsyncSession, open_config):
        assembly = await add_assembly(db_session, status=AssemblyStatus.ARCHIVED)
        modality = await add_modality(db_session, assembly)
        with pytest.raises(RegistrationClosed):
            await registrations.create(db_session, assembly.id, modality.id, "user-1", make_form(), open_config)

    @pytest.mark.asyncio
    async def test_deadline_passed(self, db_session: AsyncSession, open_config):
        assembly = await add_assembly(
            db_session, registration_deadline=datetime.now(timezone.utc) - timedelta(hours=1)
        )
        modality = await add_modality(db_session, assembly)
        with pytest.raises(RegistrationClosed) as exc_info:
            await registrations.create(db_session, assembly.id, modality.id, "user-1", make_form(), open_config)
        assert "deadline" in exc_info.value.context

    @pytest.mark.asyncio
    async def test_deadline_in_future(self, db_session: AsyncSession, open_config):
        assembly = await add_assembly(
            db_session, registration_deadline=datetime.now(timezone.utc) + timedelta(days=1)
        )
        modality = await add_modality(db_session, assembly)
        registration, _ = await registrations.create(
            db_session, assembly.id, modality.id, "user-1", make_form(), open_config
        )
        assert registration.status == RegistrationStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_assembly(self, db_session: AsyncSession, test_modality, open_config):
        with pytest.raises(NotFoundError):
            await registrations.create(db_session, "missing", test_modality.id, "user-1", make_form(), open_config)

    @pytest.mark.asyncio
    async def test_modality_from_other_assembly(self, db_session: AsyncSession, test_assembly, open_config):
        other = await add_assembly(db_session, name="AGE 2025", kind=AssemblyType.AGE)
        modality = await add_modality(db_session, other)
        with pytest.raises(ValidationError):
            await registrations.create(db_session, test_assembly.id, modality.id, "user-1", make_form(), open_config)

    @pytest.mark.asyncio
    async def test_modality_full(self, db_session: AsyncSession, test_assembly, open_config):
        modality = await add_modality(db_session, test_assembly, max_participants=1)
        await registrations.create(db_session, test_assembly.id, modality.id, "user-1", make_form(), open_config)
        with pytest.raises(ModalityFull):
            await registrations.create(db_session, test_assembly.id, modality.id, "user-2", make_form(), open_config)
        assert await modality_ledger.current_count(db_session, modality.id) == 1

    @pytest.mark.asyncio
    async def test_rejected_registration_frees_slot(self, db_session: AsyncSession, test_assembly, open_config):
        modality = await add_modality(db_session, test_assembly, max_participants=1)
        await add_registration(db_session, test_assembly, modality, "user-1", status=RegistrationStatus.REJECTED)
        registration, _ = await registrations.create(
            db_session, test_assembly.id, modality.id, "user-2", make_form(), open_config
        )
        assert registration.status == RegistrationStatus.PENDING

    @pytest.mark.asyncio
    async def test_assembly_capacity(self, db_session: AsyncSession, open_config):
        assembly = await add_assembly(db_session, max_participants=1)
        first = await add_modality(db_session, assembly, name="A")
        second = await add_modality(db_session, assembly, name="B", order=2)
        await registrations.create(db_session, assembly.id, first.id, "user-1", make_form(), open_config)

        with pytest.raises(CapacityExceeded) as exc_info:
            await registrations.create(db_session, assembly.id, second.id, "user-2", make_form(), open_config)
        assert exc_info.value.code == "capacity_exceeded"

    @pytest.mark.asyncio
    async def test_duplicate_board_member(self, db_session: AsyncSession, test_assembly, test_modality, open_config):
        """Test that one board position cannot be claimed twice."""
        form = make_form(ParticipantType.EXECUTIVE_BOARD, entity_id="EB-PRES")
        await registrations.create(db_session, test_assembly.id, test_modality.id, "user-1", form, open_config)
        with pytest.raises(DuplicateRegistration):
            await registrations.create(db_session, test_assembly.id, test_modality.id, "user-2", form, open_config)

    @pytest.mark.asyncio
    async def test_duplicate_user(self, db_session: AsyncSession, test_assembly, test_modality, open_config):
        form = make_form(ParticipantType.LOCAL_COMMITTEE, entity_id="USP")
        await registrations.create(db_session, test_assembly.id, test_modality.id, "user-1", form, open_config)
        with pytest.raises(DuplicateRegistration) as exc_info:
            await registrations.create(db_session, test_assembly.id, test_modality.id, "user-1", form, open_config)
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_committee_allows_several_delegates(self, db_session: AsyncSession, test_assembly, test_modality, open_config):
        form = make_form(ParticipantType.LOCAL_COMMITTEE, entity_id="USP")
        await registrations.create(db_session, test_assembly.id, test_modality.id, "user-1", form, open_config)
        await registrations.create(db_session, test_assembly.id, test_modality.id, "user-2", form, open_config)
        assert len(await registrations.list_registrations(db_session, test_assembly.id)) == 2

    @pytest.mark.asyncio
    async def test_other_participants_not_unique(self, db_session: AsyncSession, test_assembly, test_modality, open_config):
        form = make_form(name="Convidado Silva")
        await registrations.create(db_session, test_assembly.id, test_modality.id, "user-1", form, open_config)
        await registrations.create(db_session, test_assembly.id, test_modality.id, "user-2", form, open_config)
        assert len(await registrations.list_registrations(db_session, test_assembly.id)) == 2

    @pytest.mark.asyncio
    async def test_one_active_registration_per_user(self, db_session: AsyncSession, test_assembly, test_modality, open_config):
        """Test that a user cannot claim a second position or register again as other."""
        await registrations.create(
            db_session, test_assembly.id, test_modality.id, "user-1",
            make_form(ParticipantType.EXECUTIVE_BOARD, entity_id="EB-PRES"), open_config,
        )
        for form in (make_form(ParticipantType.EXECUTIVE_BOARD, entity_id="EB-SEC"), make_form()):
            with pytest.raises(DuplicateRegistration) as exc_info:
                await registrations.create(db_session, test_assembly.id, test_modality.id, "user-1", form, open_config)
            assert exc_info.value.context["participant_id"] == "user-1"

        assert len(await registrations.list_registrations(db_session, test_assembly.id)) == 1
        assert await modality_ledger.current_count(db_session, test_modality.id) == 1

    @pytest.mark.asyncio
    async def test_user_index_backs_the_check(self, db_session: AsyncSession, test_assembly, test_modality):
        await add_registration(db_session, test_assembly, test_modality, "user-1")
        with pytest.raises(IntegrityError):
            await add_registration(
                db_session, test_assembly, test_modality, "user-1",
                participant_type=ParticipantType.EXECUTIVE_BOARD, entity_id="EB-PRES",
            )
        await db_session.rollback()

    @pytest.mark.asyncio
    async def test_cancelled_identity_can_register_again(self, db_session: AsyncSession, test_assembly, test_modality, open_config):
        await add_registration(
            db_session, test_assembly, test_modality, "user-1",
            participant_type=ParticipantType.EXECUTIVE_BOARD, entity_id="EB-PRES",
            status=RegistrationStatus.CANCELLED,
        )
        registration, _ = await registrations.create(
            db_session, test_assembly.id, test_modality.id, "user-2",
            make_form(ParticipantType.EXECUTIVE_BOARD, entity_id="EB-PRES"), open_config,
        )
        assert registration.identity_key == "executive_board:EB-PRES"


class TestReview:
    """Test approve / reject."""

    @pytest.mark.asyncio
    async def test_approve(self, db_session: AsyncSession, test_assembly, test_modality, notifier):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")
        reviewed = await registrations.review(
            db_session, registration.id, ReviewDecision.APPROVE, ORGANIZER_ID, notifier=notifier
        )
        assert reviewed.status == RegistrationStatus.APPROVED
        assert reviewed.reviewed_by == ORGANIZER_ID
        assert notifier.kinds == ["registration_approved"]
        assert notifier.events[0][1]["is_payment_exempt"] is False

    @pytest.mark.asyncio
    async def test_reject_requires_notes(self, db_session: AsyncSession, test_assembly, test_modality):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")
        with pytest.raises(ReviewNotesRequired):
            await registrations.review(db_session, registration.id, ReviewDecision.REJECT, ORGANIZER_ID, notes="  ")
        assert registration.status == RegistrationStatus.PENDING

    @pytest.mark.asyncio
    async def test_reject_with_notes(self, db_session: AsyncSession, test_assembly, test_modality, notifier):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")
        reviewed = await registrations.review(
            db_session, registration.id, ReviewDecision.REJECT, ORGANIZER_ID,
            notes="Receipt is illegible", notifier=notifier,
        )
        assert reviewed.status == RegistrationStatus.REJECTED
        assert reviewed.review_notes == "Receipt is illegible"
        kind, payload = notifier.events[0]
        assert kind.value == "registration_rejected"
        assert payload["can_resubmit"] is True
        assert payload["review_notes"] == "Receipt is illegible"

    @pytest.mark.parametrize("status", [
        RegistrationStatus.APPROVED, RegistrationStatus.REJECTED, RegistrationStatus.CANCELLED,
    ])
    @pytest.mark.asyncio
    async def test_review_from_final_state(self, db_session: AsyncSession, test_assembly, test_modality, status):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1", status=status)
        with pytest.raises(InvalidStateTransition):
            await registrations.review(db_session, registration.id, ReviewDecision.APPROVE, ORGANIZER_ID)

    @pytest.mark.asyncio
    async def test_review_pending_review(self, db_session: AsyncSession, test_assembly, test_modality):
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.PENDING_REVIEW
        )
        reviewed = await registrations.review(db_session, registration.id, ReviewDecision.APPROVE, ORGANIZER_ID)
        assert reviewed.status == RegistrationStatus.APPROVED

    @pytest.mark.asyncio
    async def test_bulk_review_partial_failure(self, db_session: AsyncSession, test_assembly, test_modality, notifier):
        """Test that one failing item does not stop the others."""
        pending = await add_registration(db_session, test_assembly, test_modality, "user-1")
        approved = await add_registration(
            db_session, test_assembly, test_modality, "user-2", status=RegistrationStatus.APPROVED
        )
        other = await add_registration(db_session, test_assembly, test_modality, "user-3")

        results = await registrations.bulk_review(
            db_session, [pending.id, approved.id, "missing", other.id],
            ReviewDecision.APPROVE, ORGANIZER_ID, notifier=notifier,
        )
        assert [r.ok for r in results] == [True, False, False, True]
        assert results[1].code == "invalid_state_transition"
        assert results[2].code == "not_found"
        assert notifier.kinds == ["registration_approved", "registration_approved"]


class TestResubmit:
    """Test the rejected -> pending path."""

    @pytest.mark.asyncio
    async def test_resubmit(self, db_session: AsyncSession, test_assembly, test_modality, open_config, notifier):
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.REJECTED
        )
        registration.review_notes = "Wrong document number"

        updated, auto = await registrations.resubmit(
            db_session, registration.id, make_form(name="Ana Souza Lima", document_number="123"),
            open_config, note="Fixed", notifier=notifier,
        )
        assert auto is False
        assert updated.status == RegistrationStatus.PENDING
        assert updated.participant_name == "Ana Souza Lima"
        assert updated.document_number == "123"
        assert updated.resubmission_note == "Fixed"
        assert updated.resubmitted_at is not None
        assert updated.review_notes is None
        assert updated.reviewed_by is None
        assert updated.modality_id == test_modality.id
        assert notifier.kinds == ["registration_created"]

    @pytest.mark.asyncio
    async def test_reject_resubmit_approve_keeps_count(self, db_session: AsyncSession, test_assembly, open_config):
        modality = await add_modality(db_session, test_assembly, max_participants=3)
        registration, _ = await registrations.create(
            db_session, test_assembly.id, modality.id, "user-1", make_form(), open_config
        )
        assert await modality_ledger.current_count(db_session, modality.id) == 1

        await registrations.review(db_session, registration.id, ReviewDecision.REJECT, ORGANIZER_ID, notes="Fix name")
        await registrations.resubmit(db_session, registration.id, make_form(name="Ana Lima"), open_config)
        approved = await registrations.review(db_session, registration.id, ReviewDecision.APPROVE, ORGANIZER_ID)

        assert approved.status == RegistrationStatus.APPROVED
        assert approved.modality_id == modality.id
        assert await modality_ledger.current_count(db_session, modality.id) == 1

    @pytest.mark.asyncio
    async def test_resubmit_keeps_modality_without_capacity_check(self, db_session: AsyncSession, test_assembly, open_config):
        modality = await add_modality(db_session, test_assembly, max_participants=1)
        rejected = await add_registration(
            db_session, test_assembly, modality, "user-1", status=RegistrationStatus.REJECTED
        )
        await add_registration(db_session, test_assembly, modality, "user-2")

        updated, _ = await registrations.resubmit(db_session, rejected.id, make_form(), open_config)
        assert updated.modality_id == modality.id
        assert updated.status == RegistrationStatus.PENDING

    @pytest.mark.asyncio
    async def test_resubmit_auto_approved(self, db_session: AsyncSession, test_assembly, test_modality, notifier):
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.REJECTED
        )
        config = AdmissionConfig(registration_enabled=True, auto_approval=True)
        updated, auto = await registrations.resubmit(
            db_session, registration.id, make_form(), config, notifier=notifier
        )
        assert auto is True
        assert updated.status == RegistrationStatus.APPROVED
        assert notifier.kinds == ["registration_auto_approved"]

    @pytest.mark.parametrize("status", [
        RegistrationStatus.PENDING, RegistrationStatus.APPROVED, RegistrationStatus.CANCELLED,
    ])
    @pytest.mark.asyncio
    async def test_resubmit_requires_rejected(self, db_session: AsyncSession, test_assembly, test_modality, open_config, status):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1", status=status)
        with pytest.raises(InvalidStateTransition):
            await registrations.resubmit(db_session, registration.id, make_form(), open_config)

    @pytest.mark.asyncio
    async def test_resubmit_identity_taken(self, db_session: AsyncSession, test_assembly, test_modality, open_config):
        """Test that a resubmission cannot claim a position someone else now holds."""
        rejected = await add_registration(
            db_session, test_assembly, test_modality, "user-1",
            participant_type=ParticipantType.EXECUTIVE_BOARD, entity_id="EB-PRES",
            status=RegistrationStatus.REJECTED,
        )
        await add_registration(
            db_session, test_assembly, test_modality, "user-2",
            participant_type=ParticipantType.EXECUTIVE_BOARD, entity_id="EB-PRES",
        )
        with pytest.raises(DuplicateRegistration):
            await registrations.resubmit(
                db_session, rejected.id, make_form(ParticipantType.EXECUTIVE_BOARD, entity_id="EB-PRES"), open_config
            )
        assert rejected.status == RegistrationStatus.REJECTED

    @pytest.mark.asyncio
    async def test_resubmit_while_user_holds_another(self, db_session: AsyncSession, test_assembly, test_modality, open_config):
        """Test that a rejected registration cannot come back once the user registered again."""
        rejected = await add_registration(
            db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.REJECTED
        )
        fresh, _ = await registrations.create(
            db_session, test_assembly.id, test_modality.id, "user-1", make_form(), open_config
        )
        with pytest.raises(DuplicateRegistration) as exc_info:
            await registrations.resubmit(db_session, rejected.id, make_form(), open_config)
        assert exc_info.value.context["existing_registration_id"] == fresh.id
        assert rejected.status == RegistrationStatus.REJECTED

    @pytest.mark.asyncio
    async def test_resubmit_while_disabled(self, db_session: AsyncSession, test_assembly, test_modality):
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.REJECTED
        )
        with pytest.raises(RegistrationClosed):
            await registrations.resubmit(
                db_session, registration.id, make_form(), AdmissionConfig(registration_enabled=False)
            )


class TestCancel:
    """Test cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_releases_slot(self, db_session: AsyncSession, test_assembly):
        modality = await add_modality(db_session, test_assembly, max_participants=1)
        registration = await add_registration(db_session, test_assembly, modality, "user-1")

        cancelled = await registrations.cancel(db_session, registration.id, "user-1")
        assert cancelled.status == RegistrationStatus.CANCELLED
        assert cancelled.cancelled_by == "user-1"
        assert await modality_ledger.current_count(db_session, modality.id) == 0

    @pytest.mark.asyncio
    async def test_cancel_twice(self, db_session: AsyncSession, test_assembly, test_modality):
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.CANCELLED
        )
        with pytest.raises(InvalidStateTransition):
            await registrations.cancel(db_session, registration.id, "user-1")


class TestPayment:
    """Test receipts and payment exemptions."""

    @pytest.mark.asyncio
    async def test_attach_receipt(self, db_session: AsyncSession, test_assembly, test_modality):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")
        updated = await registrations.attach_payment_receipt(db_session, registration.id, RECEIPT, "user-1")
        assert updated.status == RegistrationStatus.PENDING_REVIEW
        assert updated.receipt_storage_id == "receipts/abc.pdf"
        assert updated.receipt_file_size == 2048
        assert updated.receipt_uploaded_by == "user-1"

    @pytest.mark.parametrize("status", [
        RegistrationStatus.APPROVED, RegistrationStatus.REJECTED, RegistrationStatus.CANCELLED,
    ])
    @pytest.mark.asyncio
    async def test_attach_receipt_refused(self, db_session: AsyncSession, test_assembly, test_modality, status):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1", status=status)
        with pytest.raises(InvalidStateTransition):
            await registrations.attach_payment_receipt(db_session, registration.id, RECEIPT, "user-1")

    @pytest.mark.asyncio
    async def test_exemption_moves_to_review(self, db_session: AsyncSession, test_assembly, test_modality):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")
        updated = await registrations.update_payment_exemption(db_session, registration.id, True, "Board member")
        assert updated.status == RegistrationStatus.PENDING_REVIEW
        assert updated.payment_exempt_reason == "Board member"

    @pytest.mark.asyncio
    async def test_removing_exemption_without_receipt(self, db_session: AsyncSession, test_assembly, test_modality):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")
        await registrations.update_payment_exemption(db_session, registration.id, True, "Board member")
        updated = await registrations.update_payment_exemption(db_session, registration.id, False, "ignored")
        assert updated.status == RegistrationStatus.PENDING
        assert updated.is_payment_exempt is False
        assert updated.payment_exempt_reason is None

    @pytest.mark.asyncio
    async def test_removing_exemption_with_receipt(self, db_session: AsyncSession, test_assembly, test_modality):
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1",
            status=RegistrationStatus.PENDING_REVIEW, receipt_storage_id="receipts/abc.pdf",
        )
        updated = await registrations.update_payment_exemption(db_session, registration.id, False)
        assert updated.status == RegistrationStatus.PENDING_REVIEW

    @pytest.mark.asyncio
    async def test_exemption_keeps_approved(self, db_session: AsyncSession, test_assembly, test_modality):
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.APPROVED
        )
        updated = await registrations.update_payment_exemption(db_session, registration.id, True)
        assert updated.status == RegistrationStatus.APPROVED
        assert updated.is_payment_exempt is True

    @pytest.mark.asyncio
    async def test_exemption_on_cancelled(self, db_session: AsyncSession, test_assembly, test_modality):
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.CANCELLED
        )
        with pytest.raises(InvalidStateTransition):
            await registrations.update_payment_exemption(db_session, registration.id, True)


class TestChangeModality:
    """Test moving a registration between modalities."""

    @pytest.mark.asyncio
    async def test_change(self, db_session: AsyncSession, test_assembly, test_modality):
        target = await add_modality(db_session, test_assembly, name="Estudante", price=10000, order=2)
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")

        moved = await registrations.change_modality(db_session, registration.id, target.id)
        assert moved.modality_id == target.id
        assert await modality_ledger.current_count(db_session, test_modality.id) == 0
        assert await modality_ledger.current_count(db_session, target.id) == 1

    @pytest.mark.asyncio
    async def test_change_to_full_modality(self, db_session: AsyncSession, test_assembly, test_modality):
        target = await add_modality(db_session, test_assembly, name="Convidado", max_participants=1, order=2)
        await add_registration(db_session, test_assembly, target, "user-2")
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")

        with pytest.raises(ModalityFull):
            await registrations.change_modality(db_session, registration.id, target.id)
        assert registration.modality_id == test_modality.id

    @pytest.mark.asyncio
    async def test_change_within_full_modality(self, db_session: AsyncSession, test_assembly):
        modality = await add_modality(db_session, test_assembly, max_participants=1)
        registration = await add_registration(db_session, test_assembly, modality, "user-1")
        moved = await registrations.change_modality(db_session, registration.id, modality.id)
        assert moved.modality_id == modality.id

    @pytest.mark.asyncio
    async def test_change_to_foreign_modality(self, db_session: AsyncSession, test_assembly, test_modality):
        other = await add_assembly(db_session, name="AGE 2025", kind=AssemblyType.AGE)
        foreign = await add_modality(db_session, other)
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")
        with pytest.raises(ValidationError):
            await registrations.change_modality(db_session, registration.id, foreign.id)

    @pytest.mark.asyncio
    async def test_change_cancelled(self, db_session: AsyncSession, test_assembly, test_modality):
        target = await add_modality(db_session, test_assembly, name="Estudante", order=2)
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.CANCELLED
        )
        with pytest.raises(InvalidStateTransition):
            await registrations.change_modality(db_session, registration.id, target.id)


class TestDelete:
    """Test hard deletion and receipt cleanup."""

    @pytest.mark.asyncio
    async def test_delete_removes_receipt(self, db_session: AsyncSession, test_assembly, test_modality, storage):
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1", receipt_storage_id="receipts/a.pdf"
        )
        outcome = await registrations.delete(db_session, registration.id, ORGANIZER_ID, storage)
        assert outcome == {"deleted": 1, "missing": [], "artifact_failures": []}
        assert storage.deleted == ["receipts/a.pdf"]
        with pytest.raises(NotFoundError):
            await registrations.get_registration(db_session, registration.id)

    @pytest.mark.asyncio
    async def test_delete_reports_receipt_failure(self, db_session: AsyncSession, test_assembly, test_modality):
        storage = FakeReceiptStorage(broken={"receipts/a.pdf"})
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1", receipt_storage_id="receipts/a.pdf"
        )
        outcome = await registrations.delete(db_session, registration.id, ORGANIZER_ID, storage)
        assert outcome["deleted"] == 1
        assert outcome["artifact_failures"] == [registration.id]

    @pytest.mark.asyncio
    async def test_bulk_delete(self, db_session: AsyncSession, test_assembly, test_modality, storage):
        first = await add_registration(db_session, test_assembly, test_modality, "user-1")
        second = await add_registration(
            db_session, test_assembly, test_modality, "user-2", receipt_storage_id="receipts/b.pdf"
        )
        outcome = await registrations.bulk_delete(
            db_session, [first.id, "missing", second.id], ORGANIZER_ID, storage
        )
        assert outcome["deleted"] == 2
        assert outcome["missing"] == ["missing"]
        assert storage.deleted == ["receipts/b.pdf"]


class TestQueries:
    """Test registration lookups."""

    @pytest.mark.asyncio
    async def test_user_registration_skips_cancelled(self, db_session: AsyncSession, test_assembly, test_modality):
        await add_registration(db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.CANCELLED)
        assert await registrations.get_user_registration(db_session, test_assembly.id, "user-1") is None

        current = await add_registration(db_session, test_assembly, test_modality, "user-1")
        found = await registrations.get_user_registration(db_session, test_assembly.id, "user-1")
        assert found.id == current.id

    @pytest.mark.asyncio
    async def test_user_registration_prefers_standing(self, db_session: AsyncSession, test_assembly, test_modality):
        """Test that approved beats active and active beats a newer rejection."""
        first = await add_registration(
            db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.APPROVED
        )
        rejected = await add_registration(
            db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.REJECTED
        )
        rejected.registered_at = first.registered_at + timedelta(hours=1)
        await db_session.flush()
        found = await registrations.get_user_registration(db_session, test_assembly.id, "user-1")
        assert found.id == first.id

        first.status = RegistrationStatus.PENDING
        await db_session.flush()
        found = await registrations.get_user_registration(db_session, test_assembly.id, "user-1")
        assert found.id == first.id

    @pytest.mark.asyncio
    async def test_list_pending(self, db_session: AsyncSession, test_assembly, test_modality):
        for i, status in enumerate(RegistrationStatus):
            await add_registration(db_session, test_assembly, test_modality, f"user-{i}", status=status)
        pending = await registrations.list_pending(db_session, test_assembly.id)
        assert {r.status for r in pending} == {RegistrationStatus.PENDING, RegistrationStatus.PENDING_REVIEW}

    @pytest.mark.asyncio
    async def test_list_by_status(self, db_session: AsyncSession, test_assembly, test_modality):
        await add_registration(db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.APPROVED)
        await add_registration(db_session, test_assembly, test_modality, "user-2")
        approved = await registrations.list_registrations(
            db_session, test_assembly.id, [RegistrationStatus.APPROVED]
        )
        assert [r.participant_id for r in approved] == ["user-1"]


class TestRegistrationAPI:
    """Test registration endpoints."""

    @pytest.mark.asyncio
    async def test_create_requires_identity(self, client: AsyncClient, test_assembly, test_modality):
        response = await client.post(
            f"/api/v1/assemblies/{test_assembly.id}/registrations",
            json={"modality_id": test_modality.id, "form": {"participant_type": "other", "participant_name": "Ana"}},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_create_and_get_mine(self, client: AsyncClient, notifier, test_assembly, test_modality):
        """Test registering and reading back the caller's registration."""
        response = await client.post(
            f"/api/v1/assemblies/{test_assembly.id}/registrations",
            headers=user_headers("user-1"),
            json={
                "modality_id": test_modality.id,
                "form": {
                    "participant_type": "local_committee",
                    "participant_name": "Ana Souza",
                    "entity_id": "USP",
                    "email": "ana@example.com",
                    "data_sharing_consent": True,
                },
            },
        )
        assert response.status_code == 201, response.text
        data = response.json()
        assert data["is_auto_approved"] is False
        assert data["registration"]["status"] == "pending"
        assert data["registration"]["has_receipt"] is False
        assert notifier.kinds == ["registration_created"]

        response = await client.get(
            f"/api/v1/assemblies/{test_assembly.id}/registrations/me", headers=user_headers("user-1")
        )
        assert response.status_code == 200
        assert response.json()["id"] == data["registration"]["id"]

        response = await client.get(
            f"/api/v1/assemblies/{test_assembly.id}/registrations/me", headers=user_headers("user-2")
        )
        assert response.status_code == 200
        assert response.json() is None

    @pytest.mark.asyncio
    async def test_create_uses_saved_config(self, client: AsyncClient, organizer_headers: dict, test_assembly, test_modality):
        response = await client.post("/api/v1/config/auto-approval", headers=organizer_headers, json={"enabled": True})
        assert response.status_code == 200, response.text

        response = await client.post(
            f"/api/v1/assemblies/{test_assembly.id}/registrations",
            headers=user_headers("user-1"),
            json={"modality_id": test_modality.id, "form": {"participant_type": "other", "participant_name": "Ana"}},
        )
        assert response.status_code == 201, response.text
        assert response.json()["is_auto_approved"] is True
        assert response.json()["registration"]["status"] == "approved"

    @pytest.mark.asyncio
    async def test_modality_full_conflict(self, client: AsyncClient, db_session, test_assembly):
        modality = await add_modality(db_session, test_assembly, max_participants=1)
        await add_registration(db_session, test_assembly, modality, "user-1")

        response = await client.post(
            f"/api/v1/assemblies/{test_assembly.id}/registrations",
            headers=user_headers("user-2"),
            json={"modality_id": modality.id, "form": {"participant_type": "other", "participant_name": "Bia"}},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "modality_full"

    @pytest.mark.asyncio
    async def test_reject_without_notes(self, client: AsyncClient, organizer_headers: dict, db_session, test_assembly, test_modality):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")
        response = await client.post(
            f"/api/v1/registrations/{registration.id}/review",
            headers=organizer_headers,
            json={"decision": "reject"},
        )
        assert response.status_code == 422
        assert response.json()["code"] == "review_notes_required"

    @pytest.mark.asyncio
    async def test_review_resubmit_cycle(self, client: AsyncClient, organizer_headers: dict, notifier, db_session, test_assembly, test_modality):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")

        response = await client.post(
            f"/api/v1/registrations/{registration.id}/review",
            headers=organizer_headers,
            json={"decision": "reject", "notes": "Missing document"},
        )
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "rejected"

        response = await client.post(
            f"/api/v1/registrations/{registration.id}/resubmit",
            headers=user_headers("user-1"),
            json={
                "form": {"participant_type": "other", "participant_name": "Ana", "document_number": "42"},
                "resubmission_note": "Added document",
            },
        )
        assert response.status_code == 200, response.text
        assert response.json()["registration"]["status"] == "pending"
        assert notifier.kinds == ["registration_rejected", "registration_created"]

    @pytest.mark.asyncio
    async def test_bulk_review(self, client: AsyncClient, organizer_headers: dict, db_session, test_assembly, test_modality):
        first = await add_registration(db_session, test_assembly, test_modality, "user-1")
        second = await add_registration(db_session, test_assembly, test_modality, "user-2")

        response = await client.post(
            "/api/v1/registrations/bulk-review",
            headers=organizer_headers,
            json={"registration_ids": [first.id, second.id, "missing"], "decision": "approve"},
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["succeeded"] == 2
        assert data["failed"] == 1

    @pytest.mark.asyncio
    async def test_receipt_and_list_pending(self, client: AsyncClient, db_session, test_assembly, test_modality):
        registration = await add_registration(db_session, test_assembly, test_modality, "user-1")
        response = await client.post(
            f"/api/v1/registrations/{registration.id}/receipt",
            headers=user_headers("user-1"),
            json=RECEIPT.model_dump(),
        )
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "pending_review"
        assert response.json()["has_receipt"] is True

        response = await client.get(f"/api/v1/assemblies/{test_assembly.id}/registrations/pending")
        assert response.status_code == 200
        assert response.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_list_filtered_by_status(self, client: AsyncClient, db_session, test_assembly, test_modality):
        await add_registration(db_session, test_assembly, test_modality, "user-1", status=RegistrationStatus.APPROVED)
        await add_registration(db_session, test_assembly, test_modality, "user-2", status=RegistrationStatus.REJECTED)
        await add_registration(db_session, test_assembly, test_modality, "user-3")

        response = await client.get(
            f"/api/v1/assemblies/{test_assembly.id}/registrations",
            params=[("status", "approved"), ("status", "rejected")],
        )
        assert response.status_code == 200
        assert response.json()["total"] == 2

    @pytest.mark.asyncio
    async def test_delete_endpoint(self, client: AsyncClient, organizer_headers: dict, storage, db_session, test_assembly, test_modality):
        registration = await add_registration(
            db_session, test_assembly, test_modality, "user-1", receipt_storage_id="receipts/a.pdf"
        )
        response = await client.delete(f"/api/v1/registrations/{registration.id}", headers=organizer_headers)
        assert response.status_code == 200, response.text
        assert response.json()["deleted"] == 1
        assert storage.deleted == ["receipts/a.pdf"]

        response = await client.get(f"/api/v1/registrations/{registration.id}")
        assert response.status_code == 404

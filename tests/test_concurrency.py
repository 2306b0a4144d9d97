"""
Tests for optimistic concurrency on buyer updates
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.test import override_settings

from buyers.concurrency import check_concurrency_token
from buyers.exceptions import StaleBuyerRecord
from buyers.models import Buyer, BuyerHistory
from buyers.services import update_buyer
from buyers.validation import validate_buyer


def update_payload(payload, buyer, **changes):
    return {**payload, 'updatedAt': buyer.updated_at.isoformat(), **changes}


@pytest.mark.django_db
class TestConcurrencyToken:
    """updated_at acts as the version token"""

    def test_second_writer_with_old_token_gets_conflict(self, authenticated_client, create_buyer, sample_buyer_payload):
        buyer = create_buyer()
        stale = update_payload(sample_buyer_payload, buyer, notes='second writer')

        first = authenticated_client.put(
            f'/api/buyers/{buyer.id}',
            update_payload(sample_buyer_payload, buyer, notes='first writer'),
            content_type='application/json',
        )
        second = authenticated_client.put(f'/api/buyers/{buyer.id}', stale, content_type='application/json')

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json() == {
            'error': 'Record has been modified by another user. Please refresh and try again.'
        }
        buyer.refresh_from_db()
        assert buyer.notes == 'first writer'
        assert buyer.history.filter(diff__action='updated').count() == 1

    def test_token_advances_on_update(self, authenticated_client, create_buyer, sample_buyer_payload):
        buyer = create_buyer()
        response = authenticated_client.put(
            f'/api/buyers/{buyer.id}',
            update_payload(sample_buyer_payload, buyer, notes='changed'),
            content_type='application/json',
        )

        buyer_after = Buyer.objects.get(pk=buyer.pk)
        assert buyer_after.updated_at > buyer.updated_at
        assert response.json()['updatedAt'] == buyer_after.updated_at.isoformat(timespec='microseconds')

    def test_served_token_round_trips_exactly(self, authenticated_client, create_buyer, sample_buyer_payload):
        buyer = create_buyer()
        # force a sub-millisecond component into the stored token
        Buyer.objects.filter(pk=buyer.pk).update(updated_at=buyer.updated_at.replace(microsecond=123456))

        served = authenticated_client.get(f'/api/buyers/{buyer.id}').json()['updatedAt']
        response = authenticated_client.put(
            f'/api/buyers/{buyer.id}',
            {**sample_buyer_payload, 'notes': 'after read', 'updatedAt': served},
            content_type='application/json',
        )

        assert served.endswith('.123456+00:00')
        assert response.status_code == 200
        assert response.json()['notes'] == 'after read'

    def test_history_timestamp_keeps_microseconds(self, authenticated_client, create_buyer):
        buyer = create_buyer()
        entry = buyer.history.get()

        response = authenticated_client.get(f'/api/buyers/{buyer.id}/history')

        assert response.json()[0]['changedAt'] == entry.changed_at.isoformat(timespec='microseconds')

    def test_chained_updates_with_fresh_tokens(self, authenticated_client, create_buyer, sample_buyer_payload):
        buyer = create_buyer()
        token = buyer.updated_at.isoformat()
        for status in ('Contacted', 'Visited'):
            response = authenticated_client.put(
                f'/api/buyers/{buyer.id}',
                {**sample_buyer_payload, 'status': status, 'updatedAt': token},
                content_type='application/json',
            )
            assert response.status_code == 200
            token = response.json()['updatedAt']

        buyer.refresh_from_db()
        assert buyer.status == 'Visited'

    def test_missing_token_overwrites(self, test_user, create_buyer, sample_buyer_payload):
        buyer = create_buyer()
        data = validate_buyer({**sample_buyer_payload, 'notes': 'blind'}, 'update').value

        updated = update_buyer(test_user, buyer.id, data)

        assert updated.notes == 'blind'

    @override_settings(BUYER_REQUIRE_CONCURRENCY_TOKEN=True)
    def test_missing_token_rejected_when_required(self, authenticated_client, create_buyer, sample_buyer_payload):
        buyer = create_buyer()
        response = authenticated_client.put(f'/api/buyers/{buyer.id}', sample_buyer_payload, content_type='application/json')

        assert response.status_code == 400
        assert response.json()['details'] == [{'field': 'updatedAt', 'message': 'Field required'}]

    def test_service_raises_stale(self, test_user, create_buyer, sample_buyer_payload):
        buyer = create_buyer()
        old_token = buyer.updated_at - timedelta(seconds=1)
        data = validate_buyer(
            {**sample_buyer_payload, 'updatedAt': old_token.isoformat()}, 'update'
        ).value

        with pytest.raises(StaleBuyerRecord):
            update_buyer(test_user, buyer.id, data)

    def test_check_token_accepts_naive_equal_value(self):
        from django.utils import timezone

        current = timezone.now()
        check_concurrency_token(current, timezone.make_naive(current))


@pytest.mark.django_db
class TestUpdateHistory:
    """Update history records only what changed"""

    def test_status_only_change(self, test_user, create_buyer, sample_buyer_payload):
        buyer = create_buyer()
        data = validate_buyer(update_payload(sample_buyer_payload, buyer, status='Qualified'), 'update').value

        update_buyer(test_user, buyer.id, data)

        entry = BuyerHistory.objects.filter(buyer=buyer, diff__action='updated').get()
        assert entry.diff['changes'] == {'status': {'from': 'New', 'to': 'Qualified'}}
        assert entry.changed_by == test_user

    def test_tags_change_recorded_in_stored_form(self, test_user, create_buyer, sample_buyer_payload):
        buyer = create_buyer()
        data = validate_buyer(update_payload(sample_buyer_payload, buyer, tags=['hot']), 'update').value

        update_buyer(test_user, buyer.id, data)

        entry = BuyerHistory.objects.filter(buyer=buyer, diff__action='updated').get()
        assert entry.diff['changes'] == {'tags': {'from': 'urgent,hot', 'to': 'hot'}}

    def test_no_op_update_writes_no_history(self, test_user, create_buyer, sample_buyer_payload):
        buyer = create_buyer()
        data = validate_buyer(update_payload(sample_buyer_payload, buyer), 'update').value

        updated = update_buyer(test_user, buyer.id, data)

        assert not BuyerHistory.objects.filter(buyer=buyer, diff__action='updated').exists()
        assert updated.updated_at > buyer.updated_at

    def test_failed_history_write_leaves_buyer_unchanged(self, test_user, create_buyer, sample_buyer_payload):
        buyer = create_buyer()
        data = validate_buyer(update_payload(sample_buyer_payload, buyer, notes='never saved', status='Visited'), 'update').value

        with patch('buyers.services.record_history', side_effect=DatabaseError('history write failed')):
            with pytest.raises(DatabaseError):
                update_buyer(test_user, buyer.id, data)

        stored = Buyer.objects.get(pk=buyer.pk)
        assert stored.notes == 'Prefers a high floor'
        assert stored.status == 'New'
        assert stored.updated_at == buyer.updated_at
        assert not BuyerHistory.objects.filter(buyer=buyer, diff__action='updated').exists()

    def test_failed_history_write_returns_server_error(self, authenticated_client, create_buyer, sample_buyer_payload):
        buyer = create_buyer()

        with patch('buyers.services.record_history', side_effect=DatabaseError('history write failed')):
            response = authenticated_client.put(
                f'/api/buyers/{buyer.id}',
                update_payload(sample_buyer_payload, buyer, notes='never saved'),
                content_type='application/json',
            )

        assert response.status_code == 500
        assert response.json() == {'error': 'Internal server error'}
        assert Buyer.objects.get(pk=buyer.pk).notes == 'Prefers a high floor'

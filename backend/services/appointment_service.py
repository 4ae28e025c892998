import logging
from datetime import date
from typing import Any, Dict, List, Optional
from pymongo import ReturnDocument
from backend.core.errors import AppointmentValidationError, RecordNotFoundError
from backend.db.mongo import Database, parse_object_id, serialize_document, utcnow, wrap_storage_errors
from backend.models.appointment import Appointment, AppointmentInput, AppointmentUpdate, CustomerCount
from backend.services.change_feed import ChangeFeed

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _to_model(doc: Dict[str, Any]) -> Appointment:
    return Appointment(**serialize_document(doc))


class AppointmentService:
    """Scheduled appointments, correlated with check-ins only by reference number"""

    def __init__(self, database: Database, feed: ChangeFeed):
        self.db = database
        self.feed = feed

    @wrap_storage_errors("load appointments")
    async def list_by_date(self, day: date) -> List[Appointment]:
        docs = self.db.appointments.find(
            {'scheduled_date': day.isoformat()},
            sort=[('scheduled_time', 1)],
        )
        return [_to_model(doc) for doc in docs]

    @wrap_storage_errors("create appointment")
    async def create(self, data: AppointmentInput) -> Appointment:
        sales_order = _clean(data.sales_order)
        delivery = _clean(data.delivery)
        if not sales_order and not delivery:
            raise AppointmentValidationError("Either Sales Order or Delivery must be provided")

        now = utcnow()
        doc = {
            'scheduled_date': data.scheduled_date.isoformat(),
            'scheduled_time': data.scheduled_time,
            'sales_order': sales_order,
            'delivery': delivery,
            'customer': _clean(data.customer),
            'carrier': _clean(data.carrier),
            'notes': _clean(data.notes),
            'source': data.source.value,
            'created_at': now,
            'updated_at': now,
        }
        result = self.db.appointments.insert_one(doc)
        doc['_id'] = result.inserted_id
        logger.info(f"Created appointment {result.inserted_id} for {doc['scheduled_date']} {doc['scheduled_time']}")

        appointment = _to_model(doc)
        self.feed.publish('appointments', 'insert', appointment.model_dump())
        return appointment

    @wrap_storage_errors("update appointment")
    async def update(self, appointment_id: str, data: AppointmentUpdate) -> Appointment:
        object_id = parse_object_id(appointment_id)
        existing = self.db.appointments.find_one({'_id': object_id})
        if existing is None:
            raise RecordNotFoundError(f"Appointment {appointment_id} not found")

        changes: Dict[str, Any] = {}
        for key, value in data.model_dump(exclude_unset=True).items():
            if key == 'scheduled_date' and value is not None:
                value = value.isoformat()
            elif isinstance(value, str) or value is None:
                value = _clean(value)
            changes[key] = value

        merged_so = changes.get('sales_order', existing.get('sales_order'))
        merged_delivery = changes.get('delivery', existing.get('delivery'))
        if not merged_so and not merged_delivery:
            raise AppointmentValidationError("Either Sales Order or Delivery must be provided")

        changes['updated_at'] = utcnow()
        updated = self.db.appointments.find_one_and_update(
            {'_id': object_id},
            {'$set': changes},
            return_document=ReturnDocument.AFTER,
        )
        appointment = _to_model(updated)
        self.feed.publish('appointments', 'update', appointment.model_dump())
        logger.info(f"Updated appointment {appointment_id}")
        return appointment

    @wrap_storage_errors("delete appointment")
    async def delete(self, appointment_id: str):
        object_id = parse_object_id(appointment_id)
        result = self.db.appointments.delete_one({'_id': object_id})
        if result.deleted_count == 0:
            raise RecordNotFoundError(f"Appointment {appointment_id} not found")
        self.feed.publish('appointments', 'delete', {'id': appointment_id})
        logger.info(f"Deleted appointment {appointment_id}")

    @wrap_storage_errors("check for duplicate appointment")
    async def is_duplicate(
        self,
        scheduled_date: date,
        scheduled_time: str,
        sales_order: Optional[str] = None,
        delivery: Optional[str] = None,
    ) -> bool:
        """Exact match on (date, time, sales order, delivery)"""
        query = {
            'scheduled_date': scheduled_date.isoformat(),
            'scheduled_time': scheduled_time,
            'sales_order': _clean(sales_order),
            'delivery': _clean(delivery),
        }
        return self.db.appointments.count_documents(query, limit=1) > 0

    @wrap_storage_errors("find appointment")
    async def find_for_reference(self, day: date, reference_number: str) -> Optional[Appointment]:
        """Today's appointment whose sales order or delivery matches a check-in reference"""
        doc = self.db.appointments.find_one({
            'scheduled_date': day.isoformat(),
            '$or': [{'sales_order': reference_number}, {'delivery': reference_number}],
        })
        return _to_model(doc) if doc else None

    @wrap_storage_errors("load customer breakdown")
    async def customer_breakdown(self, day: date) -> List[CustomerCount]:
        counts: Dict[str, int] = {}
        for doc in self.db.appointments.find({'scheduled_date': day.isoformat()}, {'customer': 1}):
            customer = doc.get('customer') or 'Unknown'
            counts[customer] = counts.get(customer, 0) + 1
        breakdown = [CustomerCount(customer=c, count=n) for c, n in counts.items()]
        breakdown.sort(key=lambda item: (-item.count, item.customer))
        return breakdown

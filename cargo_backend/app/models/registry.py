"""
Imports every model so that Base.metadata knows all tables.
"""

from cargo_backend.app.models.service import Service  # noqa: F401
from cargo_backend.app.models.order import Order  # noqa: F401
from cargo_backend.app.models.counter import Counter  # noqa: F401
from cargo_backend.app.models.warehouse import Warehouse  # noqa: F401
from cargo_backend.app.models.dispatch import Dispatch  # noqa: F401
from cargo_backend.app.models.pallet import Pallet  # noqa: F401
from cargo_backend.app.models.container import Container  # noqa: F401
from cargo_backend.app.models.flight import Flight  # noqa: F401
from cargo_backend.app.models.parcel import Parcel  # noqa: F401
from cargo_backend.app.models.delivery import DeliveryRoute, DeliveryAssignment  # noqa: F401
from cargo_backend.app.models.parcel_event import ParcelEvent  # noqa: F401
from cargo_backend.app.models.unit_event import UnitEvent  # noqa: F401

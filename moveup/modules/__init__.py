"""Domain modules package."""

from moveup.modules.audit import models as audit_models  # noqa: F401
from moveup.modules.billing import models as billing_models  # noqa: F401
from moveup.modules.booking import models as booking_models  # noqa: F401
from moveup.modules.notifications import models as notifications_models  # noqa: F401
from moveup.modules.scheduling import models as scheduling_models  # noqa: F401

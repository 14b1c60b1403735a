from flask import Blueprint

prescriptions = Blueprint('prescriptions', __name__)

from storefront.prescriptions import routes  # noqa: F401, E402
from storefront.prescriptions import models  # noqa: F401, E402  — registers PrescriptionRequest with SQLAlchemy

# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les relations inter-modèles.

from schoolgate.models.student import ParentDetail, Student  # noqa: F401
from schoolgate.models.scan_log import ScanEvent  # noqa: F401
from schoolgate.models.sms_log import SmsLog  # noqa: F401

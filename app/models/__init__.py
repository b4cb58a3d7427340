# Automatically load all models so metadata knows them
from app.models.course_model import Course, CourseValidity
from app.models.course_purchase_model import CoursePurchase
from app.models.installment_plan_model import InstallmentPlan, PlanInstallment
from app.models.payment_order_model import PaymentOrder
from app.models.reconcile_alert_model import ReconcileAlert
from app.models.system_settings_model import SystemSetting
from app.models.user_ledger_model import UserLedger, LedgerPayment

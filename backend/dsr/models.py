# backend/dsr/models.py
from __future__ import annotations
from .extensions import db
from .time_utils import to_utc_z, to_iso_date


ROLES = ("cashier", "store_manager", "accounts_incharge", "super_user")
# Roles that see every store and may act on any of them
PRIVILEGED_ROLES = ("super_user", "accounts_incharge")
# Roles pinned to their effective store
STORE_ROLES = ("cashier", "store_manager")

AUTH_LOCAL = "local"
AUTH_EXTERNAL_SSO = "external_sso"
AUTHENTICATION_TYPES = (AUTH_LOCAL, AUTH_EXTERNAL_SSO)

APPROVAL_STATUSES = ("pending", "approved", "rejected")
TENDER_TYPES = ("cash", "credit", "credit_card", "upi", "hand_bill", "rrn", "gift_voucher")
EXPENSE_PAYMENT_METHODS = ("petty_cash", "bank_transfer", "credit_card")
VOUCHER_STATUSES = ("active", "redeemed", "expired", "cancelled")
VOUCHER_TYPES = ("system_generated", "legacy", "manual")
DAMAGE_STATUSES = ("reported", "investigating", "resolved", "closed")


def _money(value):
    return float(value) if value is not None else None


class Store(db.Model):
    """
    Retail store. A store manager's authority store is resolved from
    ``manager_id`` rather than from the user's own ``store_id`` column.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_code = db.Column(db.String(10), nullable=False, unique=True, index=True)
    store_name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    # Back-reference to the managing user (cyclic with users.store_id)
    manager_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", use_alter=True, name="fk_stores_manager"),
        nullable=True,
        index=True,
    )

    petty_cash_limit = db.Column(db.Numeric(12, 2), nullable=False, default=5000)
    timezone = db.Column(db.String(64), nullable=False, default="Asia/Kolkata")
    daily_deadline_time = db.Column(db.String(8), nullable=False, default="12:00:00")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    configuration = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    manager = db.relationship("User", foreign_keys=[manager_id], post_update=True)

    def __repr__(self) -> str:
        return f"<Store id={self.id} code={self.store_code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_code": self.store_code,
            "store_name": self.store_name,
            "address": self.address,
            "phone": self.phone,
            "manager_id": self.manager_id,
            "petty_cash_limit": _money(self.petty_cash_limit),
            "timezone": self.timezone,
            "daily_deadline_time": self.daily_deadline_time,
            "is_active": self.is_active,
            "configuration": self.configuration or {},
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class User(db.Model):
    """
    Staff account. Local accounts sign in with username/password; external
    SSO accounts are matched by email after identity-provider introspection.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint(
            "authentication_type != 'local' OR password_hash IS NOT NULL",
            name="ck_users_local_password",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=True, unique=True)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)

    # bcrypt hash, local accounts only
    password_hash = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(32), nullable=False, index=True)
    authentication_type = db.Column(db.String(16), nullable=False, default=AUTH_LOCAL)
    external_subject_id = db.Column(db.String(128), nullable=True)

    # Direct store assignment (nullable)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    preferences = db.Column(db.JSON, nullable=False, default=dict)
    created_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    store = db.relationship("Store", foreign_keys=[store_id], backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        # password_hash is never serialized
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "authentication_type": self.authentication_type,
            "store_id": self.store_id,
            "is_active": self.is_active,
            "preferences": self.preferences or {},
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_login": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class Sale(db.Model):
    """One tender line of a store's daily sales report."""
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_store_date", "store_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    sale_date = db.Column(db.Date, nullable=False, index=True)
    tender_type = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    transaction_reference = db.Column(db.String(255), nullable=True)
    customer_reference = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Hand bill -> system bill conversion
    is_hand_bill_converted = db.Column(db.Boolean, nullable=False, default=False)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    converted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    entered_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    approval_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)

    custom_data = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("sales", lazy=True))
    entered_by_user = db.relationship("User", foreign_keys=[entered_by])
    approved_by_user = db.relationship("User", foreign_keys=[approved_by])

    def to_dict(self, *, include_related: bool = False) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "sale_date": to_iso_date(self.sale_date),
            "tender_type": self.tender_type,
            "amount": _money(self.amount),
            "transaction_reference": self.transaction_reference,
            "customer_reference": self.customer_reference,
            "notes": self.notes,
            "is_hand_bill_converted": self.is_hand_bill_converted,
            "converted_at": to_utc_z(self.converted_at) if self.converted_at else None,
            "converted_by": self.converted_by,
            "entered_by": self.entered_by,
            "approval_status": self.approval_status,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "approval_notes": self.approval_notes,
            "custom_data": self.custom_data or {},
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_related:
            data["store"] = _store_brief(self.store)
            data["entered_by_user"] = _user_brief(self.entered_by_user)
            data["approved_by_user"] = _user_brief(self.approved_by_user)
        return data


class Expense(db.Model):
    """Store expense, typically paid from petty cash."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_store_date", "store_id", "expense_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    expense_date = db.Column(db.Date, nullable=False, index=True)
    category = db.Column(db.String(64), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    voucher_number = db.Column(db.String(64), nullable=True)
    payment_method = db.Column(db.String(32), nullable=False, default="petty_cash")
    expense_owner = db.Column(db.String(120), nullable=True)

    requested_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    approval_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("expenses", lazy=True))
    requested_by_user = db.relationship("User", foreign_keys=[requested_by])
    approved_by_user = db.relationship("User", foreign_keys=[approved_by])

    def to_dict(self, *, include_related: bool = False) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "expense_date": to_iso_date(self.expense_date),
            "category": self.category,
            "description": self.description,
            "amount": _money(self.amount),
            "voucher_number": self.voucher_number,
            "payment_method": self.payment_method,
            "expense_owner": self.expense_owner,
            "requested_by": self.requested_by,
            "approval_status": self.approval_status,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "approval_notes": self.approval_notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_related:
            data["store"] = _store_brief(self.store)
            data["requested_by_user"] = _user_brief(self.requested_by_user)
            data["approved_by_user"] = _user_brief(self.approved_by_user)
        return data


class Customer(db.Model):
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_name = db.Column(db.String(120), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True, unique=True, index=True)
    customer_email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    credit_limit = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_outstanding = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    origin_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "address": self.address,
            "credit_limit": _money(self.credit_limit),
            "total_outstanding": _money(self.total_outstanding),
            "notes": self.notes,
            "origin_store_id": self.origin_store_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class GiftVoucher(db.Model):
    """
    Gift voucher. Redemption is all-or-nothing: a voucher moves from
    active to redeemed only while its balance is untouched.
    """
    __tablename__ = "gift_vouchers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    voucher_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    original_amount = db.Column(db.Numeric(12, 2), nullable=False)
    current_balance = db.Column(db.Numeric(12, 2), nullable=False)
    issued_date = db.Column(db.Date, nullable=False)
    expiry_date = db.Column(db.Date, nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    voucher_type = db.Column(db.String(32), nullable=False, default="system_generated")

    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    customer_name = db.Column(db.String(120), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    redeemed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    redeemed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    redeemed_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("gift_vouchers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "voucher_number": self.voucher_number,
            "original_amount": _money(self.original_amount),
            "current_balance": _money(self.current_balance),
            "issued_date": to_iso_date(self.issued_date),
            "expiry_date": to_iso_date(self.expiry_date),
            "status": self.status,
            "voucher_type": self.voucher_type,
            "store_id": self.store_id,
            "created_by": self.created_by,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "redeemed_at": to_utc_z(self.redeemed_at) if self.redeemed_at else None,
            "redeemed_by": self.redeemed_by,
            "redeemed_store_id": self.redeemed_store_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SystemSetting(db.Model):
    __tablename__ = "system_settings"
    __table_args__ = (
        db.UniqueConstraint("module_name", "setting_key", name="uq_system_settings_module_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    module_name = db.Column(db.String(64), nullable=False, index=True)
    setting_key = db.Column(db.String(128), nullable=False)
    setting_value = db.Column(db.JSON, nullable=True)
    description = db.Column(db.Text, nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "module_name": self.module_name,
            "setting_key": self.setting_key,
            "setting_value": self.setting_value,
            "description": self.description,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AuditLog(db.Model):
    """
    Append-only record of state-changing operations.

    IMMUTABLE: Never update or delete.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_table_action", "table_name", "action_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_name = db.Column(db.String(64), nullable=False)
    record_id = db.Column(db.String(64), nullable=True)
    action_type = db.Column(db.String(16), nullable=False)  # INSERT, UPDATE, DELETE
    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "action_type": self.action_type,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "user_id": self.user_id,
            "store_id": self.store_id,
            "ip_address": self.ip_address,
            "created_at": to_utc_z(self.created_at),
        }


class DamageReport(db.Model):
    __tablename__ = "damage_reports"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    report_date = db.Column(db.Date, nullable=False)
    supplier_name = db.Column(db.String(120), nullable=False)
    dc_number = db.Column(db.String(64), nullable=True)
    item_code = db.Column(db.String(64), nullable=True)
    brand_name = db.Column(db.String(120), nullable=True)
    item_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    damage_source = db.Column(db.String(64), nullable=True)
    damage_category = db.Column(db.String(64), nullable=True)
    action_taken = db.Column(db.Text, nullable=True)
    replacement_from_distributor = db.Column(db.Boolean, nullable=False, default=False)
    credit_note_number = db.Column(db.String(64), nullable=True)
    estimated_value = db.Column(db.Numeric(12, 2), nullable=True)
    reported_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="reported")
    resolution_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "report_date": to_iso_date(self.report_date),
            "supplier_name": self.supplier_name,
            "dc_number": self.dc_number,
            "item_code": self.item_code,
            "brand_name": self.brand_name,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "damage_source": self.damage_source,
            "damage_category": self.damage_category,
            "action_taken": self.action_taken,
            "replacement_from_distributor": self.replacement_from_distributor,
            "credit_note_number": self.credit_note_number,
            "estimated_value": _money(self.estimated_value),
            "reported_by": self.reported_by,
            "status": self.status,
            "resolution_notes": self.resolution_notes,
            "created_at": to_utc_z(self.created_at),
        }


def _store_brief(store: Store | None) -> dict | None:
    if store is None:
        return None
    return {"store_code": store.store_code, "store_name": store.store_name}


def _user_brief(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"first_name": user.first_name, "last_name": user.last_name}

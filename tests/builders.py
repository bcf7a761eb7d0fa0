from audit_api.models.item import AuditItem, make_item_id
from audit_api.models.location import LocationRead
from audit_api.models.questionnaire import Question
from audit_api.models.user import Role, UserContext

STORE_A = LocationRead(id="loc-a", name="Store A")
STORE_B = LocationRead(id="loc-b", name="Store B")
WAREHOUSE = LocationRead(id="loc-w", name="Warehouse")
ALL_LOCATIONS = [STORE_A, STORE_B, WAREHOUSE]

ADMIN = UserContext(user_id="u-admin", role=Role.ADMIN)
AUDITOR = UserContext(user_id="u-auditor", role=Role.AUDITOR, assigned_locations=frozenset({"loc-a"}))
TWO_STORE_AUDITOR = UserContext(
    user_id="u-auditor-2", role=Role.AUDITOR, assigned_locations=frozenset({"loc-a", "loc-b"})
)
CLIENT = UserContext(user_id="u-client", role=Role.CLIENT, assigned_locations=frozenset({"loc-a"}))


def make_item(sku, location="Store A", system=0, physical=None, name=None, category="Tools", **extra):
    return AuditItem(
        id=make_item_id(sku, location),
        sku=sku,
        location=location,
        name=name or f"Item {sku}",
        category=category,
        system_quantity=system,
        physical_quantity=physical,
        **extra,
    )


def make_question(question_id, question_type="text", options=(), required=False, text=None):
    return Question(
        id=question_id,
        text=text or f"Question {question_id}",
        type=question_type,
        required=required,
        options=[{"id": option, "text": option.title()} for option in options],
    )

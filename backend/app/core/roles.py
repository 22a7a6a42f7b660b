from enum import Enum


class Role(str, Enum):
    employee = "Empleado"
    admin = "Administrador"


def normalize_role(value) -> str:
    # Free text in the stored data; blank means the default role
    cleaned = (value or "").strip()
    return cleaned or Role.employee.value

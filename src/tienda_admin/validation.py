from __future__ import annotations

import re
from typing import Any, Iterable

from .errors import ValidationError
from .schema import FieldKind, FormField

LETTERS_RE = re.compile(r"^[A-Za-zÁÉÍÓÚáéíóúÑñ\s]+$")
CI_RE = re.compile(r"^\d{7}$")
CELULAR_RE = re.compile(r"^\d{8}$")
EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PASSWORD_RE = re.compile(r"^(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")

PASSWORD_MESSAGE = (
    "La contraseña es insegura. Debe tener al menos 8 caracteres, incluir una "
    "mayúscula, un número y un carácter especial (@$!%*?&)."
)

# regla -> (patrón, mensaje)
RULES = {
    "letters": (LETTERS_RE, 'El campo "{label}" solo puede contener letras y espacios.'),
    "ci": (CI_RE, "El C.I. debe contener exactamente 7 dígitos."),
    "celular": (CELULAR_RE, "El celular debe contener exactamente 8 dígitos."),
    "email": (EMAIL_RE, "Debe ingresar un correo válido."),
    "password": (PASSWORD_RE, PASSWORD_MESSAGE),
}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_number(f: FormField, value: Any):
    try:
        number = int(str(value).strip()) if f.integer else float(str(value).strip().replace(",", "."))
    except ValueError:
        kind = "entero" if f.integer else "número"
        raise ValidationError(f'El campo "{f.label}" debe ser un {kind} válido.', f.name) from None
    if f.min_value is not None and number < f.min_value:
        raise ValidationError(f'El campo "{f.label}" debe ser mayor o igual a {f.min_value:g}.', f.name)
    return number


def _select_value(value: Any):
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return value


def validate_form(fields: Iterable[FormField], values: dict, *, editing: bool = False) -> dict:
    """Validar un formulario y devolver los valores normalizados.

    Se detiene en la primera regla violada y lanza ``ValidationError`` con un
    único mensaje. Los archivos y los campos deshabilitados no se validan aquí.
    En edición la contraseña vacía significa "mantener la actual".
    """
    cleaned: dict = {}
    for f in fields:
        if f.kind is FieldKind.FILE:
            continue
        raw = values.get(f.name)

        if f.kind is FieldKind.CHECKBOX:
            cleaned[f.name] = bool(raw)
            continue
        if f.disabled or f.kind is FieldKind.HIDDEN:
            cleaned[f.name] = None if _is_blank(raw) else raw
            continue

        if _is_blank(raw):
            optional_password = f.kind is FieldKind.PASSWORD and editing
            if f.required and not optional_password:
                raise ValidationError(f'El campo "{f.label}" es obligatorio.', f.name)
            cleaned[f.name] = None
            continue

        if f.kind is FieldKind.NUMBER:
            cleaned[f.name] = _parse_number(f, raw)
            continue
        if f.kind is FieldKind.SELECT:
            cleaned[f.name] = _select_value(raw)
            continue

        text = str(raw).strip()
        if f.max_length is not None and len(text) > f.max_length:
            raise ValidationError(
                f'El campo "{f.label}" no puede superar {f.max_length} caracteres.', f.name
            )
        if f.rule:
            pattern, message = RULES[f.rule]
            if not pattern.match(text):
                raise ValidationError(message.format(label=f.label), f.name)
        cleaned[f.name] = text.lower() if f.rule == "email" else text
    return cleaned

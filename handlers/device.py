"""
Handler: Device Identification
Reads a serial number / model code from a photo of an equipment label, identifies
brand and type from that code, and proposes a peripheral kit for a primary device.
Essential: failures propagate to the caller.
"""
from pydantic import BaseModel, Field

from ai_client import JSON_MIME_TYPE, parse_response, resolve_dispatcher
from errors import MalformedResponseError
from handlers.common import cap_text
from image_processor import InlineImage, prepare_image

SERIAL_PROMPT = (
    "Extract the most prominent serial number or alphanumeric code from this image. "
    "Return only the code itself, with no additional text or labels."
)


class DeviceInfo(BaseModel):
    brand: str = Field(description="The brand of the device (e.g. Dell, HP, Apple).")
    type:  str = Field(description="The type of device (e.g. Laptop, Monitor, Keyboard).")


class PeripheralSuggestion(BaseModel):
    brandName:   str = Field(description="A common brand for this peripheral (e.g. Dell, Logitech).")
    typeName:    str = Field(description="The type of the peripheral (e.g. Monitor, Keyboard, Mouse).")
    description: str = Field(description="A generic model name or description.")


def extract_serial_from_image(image: InlineImage, dispatcher=None, model: str | None = None) -> str:
    """Return the code read from the label; raises MalformedResponseError when none was read."""
    dispatcher = resolve_dispatcher(dispatcher)
    prepared   = prepare_image(image)
    text = dispatcher.dispatch(model, SERIAL_PROMPT, [prepared])
    code = text.strip().strip("`\"'").strip()
    if not code:
        raise MalformedResponseError("No code could be read from the image.", raw_text=text)
    return code


def get_device_info(serial_number: str, dispatcher=None, model: str | None = None) -> DeviceInfo:
    dispatcher = resolve_dispatcher(dispatcher)
    prompt = (
        f"Based on the serial number or model code \"{cap_text(serial_number, 200)}\", identify "
        "the brand and type of the electronic device. For example, for \"SN-DELL-001\" you "
        "might respond with Dell and Laptop."
    )
    text = dispatcher.dispatch(
        model, prompt, response_schema=DeviceInfo, response_mime_type=JSON_MIME_TYPE,
    )
    return parse_response(text, DeviceInfo)


def suggest_peripherals(
    brand: str,
    device_type: str,
    description: str,
    dispatcher=None,
    model: str | None = None,
) -> list[PeripheralSuggestion]:
    dispatcher = resolve_dispatcher(dispatcher)
    prompt = (
        f"For a primary device that is a {brand} {device_type} described as "
        f"\"{cap_text(description, 500)}\", suggest a standard set of peripherals (such as "
        "monitor, keyboard, mouse and a docking station if applicable). For each peripheral give "
        "a plausible brand (e.g. a Dell monitor for a Dell computer) and a generic model name "
        "or description."
    )
    text = dispatcher.dispatch(
        model, prompt,
        response_schema=list[PeripheralSuggestion], response_mime_type=JSON_MIME_TYPE,
    )
    return parse_response(text, list[PeripheralSuggestion])

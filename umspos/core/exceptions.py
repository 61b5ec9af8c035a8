"""Domain errors raised by inventory and account services"""


class InventoryError(Exception):
    """Base class for errors raised while moving meters through their lifecycle"""
    status_code = 400

    def __init__(self, message, serial_numbers=None):
        super().__init__(message)
        self.message = message
        self.serial_numbers = list(serial_numbers or [])

    def to_response_data(self):
        data = {'error': self.message}
        if self.serial_numbers:
            data['serial_numbers'] = self.serial_numbers
        return data


class MeterStateError(InventoryError):
    """A meter is not in the state an operation requires"""


class MeterNotFound(InventoryError):
    status_code = 404


class DuplicateMeterError(InventoryError):
    status_code = 409


class EmailDeliveryError(Exception):
    """Email provider rejected the message or could not be reached"""
    status_code = 502

from .auth import User, SessionToken, SecurityEvent, PasswordReset
from .pets import Pet, MedicalRecord
from .catalog import Category, Service, Product
from .boarding import Cage, CageReservation
from .appointments import Appointment, AppointmentPet
from .orders import Order, OrderItem, Transaction
from .notifications import Notification, EmailOutbox

__all__ = [
    'User', 'SessionToken', 'SecurityEvent', 'PasswordReset',
    'Pet', 'MedicalRecord',
    'Category', 'Service', 'Product',
    'Cage', 'CageReservation',
    'Appointment', 'AppointmentPet',
    'Order', 'OrderItem', 'Transaction',
    'Notification', 'EmailOutbox',
]

from .users import User, UserRole, UserCodeCounter
from .courses import Course, Unit

from rest_framework import permissions

class IsAdminRole(permissions.BasePermission):
    """
    Allows access to platform administrators only.
    Strictly blocks Students.
    """
    message = "ADMIN_ONLY"

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return getattr(request.user, 'is_admin_role', False)

class IsStudentRole(permissions.BasePermission):
    message = "STUDENT_ONLY"

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return getattr(request.user, 'is_student_role', False)

from django.contrib import admin
from django.urls import path, include

# Import Views
from users.views import CustomLoginView, UserProfileView

urlpatterns = [
    path('admin/', admin.site.urls),

    # --- Authentication ---
    path('api/auth/login/', CustomLoginView.as_view(), name='login'),
    path('api/auth/me/', UserProfileView.as_view(), name='user-profile'),

    # --- Exam taking, attempt control, results ---
    path('api/', include('assessments.urls')),

    # --- Admin answer key & exam management ---
    path('api/admin/', include('exams.urls')),
    path('api/admin/', include('cores.urls')),
]

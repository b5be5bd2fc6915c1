from django.contrib import admin

from .models import Attempt, Answer, Result

admin.site.register(Attempt)
admin.site.register(Answer)
admin.site.register(Result)

from django.urls import include, path

urlpatterns = [
    path('api/', include('onboarding_app.urls')),
    path('api/users/', include('onboarding_user.urls')),
]

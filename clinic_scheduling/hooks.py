app_name = "clinic_scheduling"
app_title = "Clinic Scheduling"
app_publisher = "Sebastian Ortiz Valencia"
app_description = "Agenda de citas médicas con disponibilidad en tres niveles y sincronización con Google Calendar"
app_email = "sebastianortiz989@gmail.com"
app_license = "mit"

# Apps
# ------------------

# required_apps = []

# Installation
# ------------

# after_install = "clinic_scheduling.install.after_install"

# Notifications
# -------------
# Otras apps pueden agregar destinatarios a los avisos de citas:
# appointment_email_recipients = ["my_app.hooks.extra_recipients"]

# Scheduled Tasks
# ---------------
# Sincroniza calendarios externos; cada doctor se procesa cuando vence su next_sync_at

scheduler_events = {
	"cron": {
		"*/15 * * * *": [  # Cada 15 minutos
			"clinic_scheduling.clinic_scheduling.scheduling.tasks.sync_connected_calendars"
		]
	}
}

# Testing
# -------

# before_tests = "clinic_scheduling.install.before_tests"

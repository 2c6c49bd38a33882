from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("lending", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="loan",
            name="emi_type",
            field=models.CharField(
                choices=[("fixed", "Fixed"), ("custom", "Custom last EMI")], default="fixed", max_length=10
            ),
        ),
        migrations.AddField(
            model_name="loan",
            name="custom_emi_amount",
            field=models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True),
        ),
    ]

# receipt_text.py
# Fixed wording printed on receipts. Blank lines separate paragraphs.

CARD_PAYMENT_NOTICE = (
    'CARD PAYMENT NOTICE: Card payments will appear on your bank statement as "Christian Trevino". '
    "Disputed charges that are confirmed as valid may be subject to a $25 processing fee, "
    "in addition to the original service total."
)

ACKNOWLEDGMENT_SENTENCE = (
    "By signing below, I acknowledge that I have read and agree to the warranty terms stated above."
)

CALIBRATION_DECLINED_TITLE = "CALIBRATION DECLINED ACKNOWLEDGMENT"
CALIBRATION_DECLINED_TEXT = """The customer has declined ADAS (Advanced Driver Assistance System) calibration service following windshield replacement. Customer acknowledges and understands that:

1. Modern vehicles equipped with ADAS features (lane departure warning, forward collision warning, automatic emergency braking, etc.) require calibration after windshield replacement.

2. Failure to calibrate these systems may result in improper function of safety features, potentially causing accidents, injuries, or property damage.

3. Windshield Repair SA is not liable for any accidents, injuries, damages, or malfunctions of ADAS systems resulting from the customer's decision to decline calibration service.

4. By declining calibration, the customer assumes full responsibility for any consequences related to uncalibrated ADAS systems."""

REPLACEMENT_WARRANTY_TITLE = "WARRANTY - REPLACEMENTS"
REPLACEMENT_WARRANTY_TEXT = """Windshield Repair SA warrants that the installation or repair will be performed to the highest standards and will be free from defects in workmanship. All of our workmanship is guaranteed for the life of the vehicle, which includes wind noise and water leaks.

Exclusions include, but are not limited to:
- Damage resulting from auto collision, new rock chips or cracks
- Leaks caused by rust deterioration
- Aftermarket antennas or devices
- Damages caused by a dysfunctional door regulator
- Any issues arising from previous installations (or other work done to the vehicle) not performed by Windshield Repair SA.

Our liability under this warranty is limited to the repair or replacement of the auto glass. In the event of a water leak, it is the customer's responsibility to ensure the vehicle is kept away from rain & moisture. Windshield Repair SA is not liable for any incidental or consequential damages arising from the use or inability to use the auto glass.

This warranty is non-transferable and expires with the change of ownership of this vehicle.

If you experience any warranty issues, please contact us immediately at 210-890-0210 so we may evaluate the issue and take necessary action. These actions may include resealing, reinstalling, or repairing. Mobile fee may apply."""

ROCK_CHIP_WARRANTY_TITLE = "WARRANTY"
ROCK_CHIP_WARRANTY_TEXT = """Upon completion of the repair, we provide a lifetime warranty to ensure the chip or crack will not spread from its original repair location. In the event that the chip does spread, we will either:

- Perform a repair on the growth portion at no cost (IF the damage is deemed repairable by one of our technicians) a maximum of two times, OR

- Credit 40% of the amount paid for the original repair to be applied toward a full windshield replacement by our company (IF the damage is deemed NOT repairable by one of our technicians, including but not limited to: if it has grown more than 4 inches)

Please note that rock chip repair is primarily focused on restoring the structural integrity of the windshield, not for cosmetic improvement. You may still notice the chip or crack after the repair is completed - this is normal.

Due to the nature of the glass being pre-damaged, there is a possibility that the chip could spread during the repair process. This becomes even more likely with extreme weather (extreme heat and cold). If this is the case, we will not charge you for the attempted repair, however, we cannot guarantee the windshield against further damage.

If you experience any warranty issues, please contact us immediately at 210-890-0210 so we may evaluate the issue and take necessary action. These actions may include repairing spread or quoting for replacement if the spread is too large. Mobile fee may apply if a warranty appointment is scheduled but the chip or crack hasn't actually spread since the first repair."""

WINDSHIELD_BONUS_TITLE = "ADDITIONAL INFO"
WINDSHIELD_BONUS_TEXT = """Your purchase comes with 1 free rock chip repair, performed by Windshield Repair SA, if it should occur within the first year of your windshield replacement.
The chip must be the size of a quarter or smaller to qualify, and a mobile fee will apply if the service is performed outside of 1604. Not redeemable for cash value.
Thank you for your business!"""
